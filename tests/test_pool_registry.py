"""
Pool Registry Test Suite

Coverage:
  - pool lifecycle (add / set) and weight conservation
  - lazy accrual, the two-pool 100/200 split and single-staker accounting
  - insurance skim, deposit fees, reward cap clamping
  - referral recording and commission
  - withdraw errors, governance gating and atomic reverts
"""

import os
import sys
from fractions import Fraction

import pytest
from eth_utils import to_checksum_address

# ── Path setup ────────────────────────────────────────────────────────
ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)

from valuefarm.chain import Chain
from valuefarm.constants import ACC_REWARD_PRECISION, ZERO_ADDRESS
from valuefarm.exceptions import (
    InsufficientAllowanceError,
    InsufficientStakeError,
    InvalidAddressError,
    InvalidFeeError,
    SelfReferralError,
    UnauthorizedError,
    UnknownPoolError,
)
from valuefarm.rewards import PoolRegistry, ReferralRegistry
from valuefarm.tokens import MAX_UINT256, CollateralToken, FungibleToken


# ══════════════════════════════════════════════════════════════════════
#  HELPERS
# ══════════════════════════════════════════════════════════════════════

GOV = to_checksum_address("0x" + "a1" * 20)
BOB = to_checksum_address("0x" + "b2" * 20)
CAROL = to_checksum_address("0x" + "c3" * 20)
DAVE = to_checksum_address("0x" + "d4" * 20)
EVE = to_checksum_address("0x" + "e5" * 20)
INSURANCE = to_checksum_address("0x" + "f6" * 20)

T0 = 1_600_000_000
STAKE_BALANCE = 1_000_000


def make_registry(
    reward_per_block=10,
    start_block=0,
    insurance_fund_bps=0,
    referral_commission_bps=0,
    cap=10**30,
    block_number=0,
):
    chain = Chain(block_number=block_number, timestamp=T0)
    collateral = FungibleToken(chain, GOV, "Collateral", "COL")
    token = CollateralToken(chain, GOV, collateral.address, cap)
    registry = PoolRegistry(
        chain,
        GOV,
        token.address,
        INSURANCE,
        reward_per_block,
        start_block,
        insurance_fund_bps=insurance_fund_bps,
        referral_commission_bps=referral_commission_bps,
    )
    token.add_minter(GOV, registry.address)
    return chain, token, registry


def make_stake_token(chain, registry, holders=(BOB, CAROL, DAVE), symbol="SLP"):
    """Stake token with STAKE_BALANCE per holder, pre-approved to the registry."""
    stake = FungibleToken(chain, GOV, f"Stake {symbol}", symbol, STAKE_BALANCE * len(holders))
    for holder in holders:
        stake.transfer(GOV, holder, STAKE_BALANCE)
        stake.approve(holder, registry.address, MAX_UINT256)
    return stake


def attach_referral(registry):
    referral = ReferralRegistry(registry.chain, GOV)
    referral.set_admin_status(GOV, registry.address, True)
    registry.set_reward_referral(GOV, referral.address)
    return referral


def harvest(registry, pid, user):
    registry.deposit(user, pid, 0)


# ══════════════════════════════════════════════════════════════════════
#  POOL LIFECYCLE
# ══════════════════════════════════════════════════════════════════════


class TestPoolLifecycle:

    def test_add_pool(self):
        chain, _, registry = make_registry()
        stake = make_stake_token(chain, registry)
        pid = registry.add(GOV, 100, stake.address, True, 0)
        assert pid == 0
        assert registry.pool_length == 1
        info = registry.pool_info(0)
        assert info.stake_token == stake.address
        assert info.alloc_point == 100
        assert info.acc_reward_per_share == 0
        assert registry.total_alloc_point == 100

    def test_add_before_start_uses_start_block(self):
        chain, _, registry = make_registry(start_block=50, block_number=10)
        stake = make_stake_token(chain, registry)
        registry.add(GOV, 100, stake.address)
        assert registry.pool_info(0).last_reward_block == 50

    def test_add_requires_governance(self):
        chain, _, registry = make_registry()
        stake = make_stake_token(chain, registry)
        with pytest.raises(UnauthorizedError, match="not the owner"):
            registry.add(BOB, 100, stake.address)

    def test_add_rejects_unknown_token(self):
        _, _, registry = make_registry()
        with pytest.raises(InvalidAddressError):
            registry.add(GOV, 100, EVE)

    def test_add_rejects_bad_fee(self):
        chain, _, registry = make_registry()
        stake = make_stake_token(chain, registry)
        with pytest.raises(InvalidFeeError):
            registry.add(GOV, 100, stake.address, True, 10_001)

    def test_set_reweights(self):
        chain, _, registry = make_registry()
        stake = make_stake_token(chain, registry)
        registry.add(GOV, 100, stake.address)
        registry.add(GOV, 200, stake.address)
        registry.set(GOV, 0, 50, True)
        assert registry.pool_info(0).alloc_point == 50
        assert registry.total_alloc_point == 250

    def test_set_changes_fee_when_given(self):
        chain, _, registry = make_registry()
        stake = make_stake_token(chain, registry)
        registry.add(GOV, 100, stake.address, True, 50)
        registry.set(GOV, 0, 100, False)
        assert registry.pool_info(0).deposit_fee_bps == 50
        registry.set(GOV, 0, 100, False, 0)
        assert registry.pool_info(0).deposit_fee_bps == 0

    def test_set_unknown_pool(self):
        _, _, registry = make_registry()
        with pytest.raises(UnknownPoolError):
            registry.set(GOV, 3, 100, True)

    def test_weight_conservation(self):
        chain, _, registry = make_registry()
        stake = make_stake_token(chain, registry)
        for alloc in (10, 20, 30, 40):
            registry.add(GOV, alloc, stake.address)
        registry.set(GOV, 1, 0, True)
        registry.set(GOV, 3, 5, False)
        total = sum(registry.pool_info(pid).alloc_point for pid in range(registry.pool_length))
        assert registry.total_alloc_point == total == 45

    def test_pool_info_is_a_copy(self):
        chain, _, registry = make_registry()
        stake = make_stake_token(chain, registry)
        registry.add(GOV, 100, stake.address)
        registry.pool_info(0).alloc_point = 1
        assert registry.pool_info(0).alloc_point == 100

    def test_get_multiplier_respects_start(self):
        _, _, registry = make_registry(start_block=100)
        assert registry.get_multiplier(50, 120) == 20
        assert registry.get_multiplier(110, 120) == 10
        assert registry.get_multiplier(50, 90) == 0


# ══════════════════════════════════════════════════════════════════════
#  ACCRUAL
# ══════════════════════════════════════════════════════════════════════


class TestAccrual:

    def test_two_pool_split(self):
        chain, token, registry = make_registry(reward_per_block=10)
        stake = make_stake_token(chain, registry)
        registry.add(GOV, 100, stake.address)
        registry.add(GOV, 200, stake.address)
        registry.deposit(BOB, 0, 1000)
        registry.deposit(CAROL, 1, 1000)

        chain.mine(30)
        assert registry.pending_reward(0, BOB) == 100
        assert registry.pending_reward(1, CAROL) == 200

        harvest(registry, 0, BOB)
        harvest(registry, 1, CAROL)
        assert token.balance_of(BOB) == 100
        assert token.balance_of(CAROL) == 200
        assert token.total_supply == 300

    def test_single_staker_accounting(self):
        chain, token, registry = make_registry(reward_per_block=10)
        stake = make_stake_token(chain, registry)
        registry.add(GOV, 1, stake.address)
        registry.add(GOV, 2, stake.address)
        registry.deposit(BOB, 0, 7)

        steps = 10
        for _ in range(steps):
            chain.mine(1)
            harvest(registry, 0, BOB)

        expected = Fraction(steps * 10 * 1, 3)
        assert abs(Fraction(token.balance_of(BOB)) - expected) <= steps

    def test_single_staker_accounting_default_settings(self):
        chain = Chain(timestamp=T0)
        collateral = FungibleToken(chain, GOV, "Collateral", "COL")
        token = CollateralToken(chain, GOV, collateral.address, 10**30)
        registry = PoolRegistry(chain, GOV, token.address, INSURANCE, 10, 0)
        token.add_minter(GOV, registry.address)
        stake = make_stake_token(chain, registry)
        registry.add(GOV, 100, stake.address)
        registry.deposit(BOB, 0, 1000)

        chain.mine(30)
        harvest(registry, 0, BOB)
        assert token.balance_of(BOB) == 30 * 10
        assert token.balance_of(INSURANCE) == 0

    def test_single_staker_accounting_with_skim(self):
        bps = 2500
        chain, token, registry = make_registry(reward_per_block=1000, insurance_fund_bps=bps)
        stake = make_stake_token(chain, registry)
        registry.add(GOV, 1, stake.address)
        registry.add(GOV, 2, stake.address)
        registry.deposit(BOB, 0, 7)

        steps = 10
        for _ in range(steps):
            chain.mine(1)
            harvest(registry, 0, BOB)

        expected = Fraction(steps * 1000 * 1, 3) * Fraction(10000 - bps, 10000)
        assert abs(Fraction(token.balance_of(BOB)) - expected) <= steps
        skimmed = Fraction(steps * 1000 * 1, 3) * Fraction(bps, 10000)
        assert abs(Fraction(token.balance_of(INSURANCE)) - skimmed) <= steps

    def test_empty_pool_only_advances_block(self):
        chain, token, registry = make_registry()
        stake = make_stake_token(chain, registry)
        registry.add(GOV, 100, stake.address)
        chain.mine(10)
        registry.update_pool(0)
        info = registry.pool_info(0)
        assert info.last_reward_block == 10
        assert info.acc_reward_per_share == 0
        assert token.total_supply == 0

    def test_zero_alloc_pool_earns_nothing(self):
        chain, token, registry = make_registry()
        stake = make_stake_token(chain, registry)
        registry.add(GOV, 0, stake.address)
        registry.deposit(BOB, 0, 100)
        chain.mine(10)
        harvest(registry, 0, BOB)
        assert token.balance_of(BOB) == 0
        assert registry.pool_info(0).last_reward_block == 10

    def test_no_rewards_before_start(self):
        chain, token, registry = make_registry(start_block=20)
        stake = make_stake_token(chain, registry)
        registry.add(GOV, 100, stake.address)
        registry.deposit(BOB, 0, 100)
        chain.advance_to_block(15)
        assert registry.pending_reward(0, BOB) == 0
        chain.advance_to_block(25)
        assert registry.pending_reward(0, BOB) == 50

    def test_update_pool_idempotent_within_block(self):
        chain, token, registry = make_registry()
        stake = make_stake_token(chain, registry)
        registry.add(GOV, 100, stake.address)
        registry.deposit(BOB, 0, 100)
        chain.mine(5)
        registry.update_pool(0)
        supply = token.total_supply
        registry.update_pool(0)
        registry.mass_update_pools()
        assert token.total_supply == supply

    def test_accumulator_monotonic(self):
        chain, _, registry = make_registry()
        stake = make_stake_token(chain, registry)
        registry.add(GOV, 100, stake.address)
        seen = [registry.pool_info(0).acc_reward_per_share]
        registry.deposit(BOB, 0, 300)
        for step, amount in enumerate((50, 0, 900, 1, 0)):
            chain.mine(step + 1)
            registry.deposit(CAROL, 0, amount)
            seen.append(registry.pool_info(0).acc_reward_per_share)
            chain.mine(2)
            registry.withdraw(BOB, 0, 10)
            seen.append(registry.pool_info(0).acc_reward_per_share)
        assert seen == sorted(seen)

    def test_pending_matches_payout(self):
        chain, token, registry = make_registry(reward_per_block=37, insurance_fund_bps=1000)
        stake = make_stake_token(chain, registry)
        registry.add(GOV, 3, stake.address)
        registry.add(GOV, 7, stake.address)
        registry.deposit(BOB, 0, 333)
        registry.deposit(CAROL, 0, 1001)
        chain.mine(17)
        pending = registry.pending_reward(0, BOB)
        harvest(registry, 0, BOB)
        assert token.balance_of(BOB) == pending
        assert registry.pending_reward(0, BOB) == 0

    def test_new_pool_dilutes_after_mass_update(self):
        chain, token, registry = make_registry(reward_per_block=10)
        stake = make_stake_token(chain, registry)
        registry.add(GOV, 100, stake.address)
        registry.deposit(BOB, 0, 1000)
        chain.mine(10)
        registry.add(GOV, 100, stake.address, True)
        chain.mine(10)
        assert registry.pending_reward(0, BOB) == 100 + 50

    def test_set_reward_per_block_settles_first(self):
        chain, token, registry = make_registry(reward_per_block=10)
        stake = make_stake_token(chain, registry)
        registry.add(GOV, 100, stake.address)
        registry.deposit(BOB, 0, 1000)
        chain.mine(10)
        registry.set_reward_per_block(GOV, 20)
        chain.mine(10)
        assert registry.pending_reward(0, BOB) == 100 + 200


# ══════════════════════════════════════════════════════════════════════
#  INSURANCE, FEES AND THE CAP
# ══════════════════════════════════════════════════════════════════════


class TestInsuranceAndFees:

    def test_insurance_skim(self):
        chain, token, registry = make_registry(reward_per_block=10, insurance_fund_bps=1000)
        stake = make_stake_token(chain, registry)
        registry.add(GOV, 100, stake.address)
        registry.deposit(BOB, 0, 1000)
        chain.mine(30)
        harvest(registry, 0, BOB)
        assert token.balance_of(INSURANCE) == 30
        assert token.balance_of(BOB) == 270

    def test_set_insurance_fund_bps(self):
        chain, token, registry = make_registry(reward_per_block=10, insurance_fund_bps=1000)
        stake = make_stake_token(chain, registry)
        registry.add(GOV, 100, stake.address)
        registry.deposit(BOB, 0, 1000)
        chain.mine(10)
        registry.set_insurance_fund_bps(GOV, 0)
        chain.mine(10)
        harvest(registry, 0, BOB)
        assert token.balance_of(INSURANCE) == 10
        assert token.balance_of(BOB) == 90 + 100

    def test_insurance_bps_bounds(self):
        _, _, registry = make_registry()
        with pytest.raises(InvalidFeeError):
            registry.set_insurance_fund_bps(GOV, 10_001)
        with pytest.raises(UnauthorizedError):
            registry.set_insurance_fund_bps(BOB, 10)

    def test_deposit_fee_goes_to_insurance(self):
        chain, _, registry = make_registry()
        stake = make_stake_token(chain, registry)
        registry.add(GOV, 100, stake.address, True, 100)
        registry.deposit(BOB, 0, 1000)
        assert stake.balance_of(INSURANCE) == 10
        assert registry.user_info(0, BOB).amount == 990
        assert registry.pool_info(0).total_staked == 990
        assert stake.balance_of(registry.address) == 990

    def test_insurance_address_handover(self):
        _, _, registry = make_registry()
        with pytest.raises(UnauthorizedError, match="wut"):
            registry.set_insurance_fund_addr(GOV, EVE)
        registry.set_insurance_fund_addr(INSURANCE, EVE)
        assert registry.insurance_fund_addr == EVE

    def test_rewards_clamped_to_cap(self):
        chain, token, registry = make_registry(reward_per_block=100, cap=500)
        stake = make_stake_token(chain, registry)
        registry.add(GOV, 100, stake.address)
        registry.deposit(BOB, 0, 1000)
        chain.mine(10)
        harvest(registry, 0, BOB)
        assert token.balance_of(BOB) == 500
        assert token.total_supply == token.cap

        chain.mine(10)
        registry.withdraw(BOB, 0, 1000)
        assert stake.balance_of(BOB) == STAKE_BALANCE
        assert token.total_supply == token.cap


# ══════════════════════════════════════════════════════════════════════
#  REFERRALS
# ══════════════════════════════════════════════════════════════════════


class TestReferrals:

    def test_referrer_recorded_and_paid(self):
        chain, token, registry = make_registry(reward_per_block=100, referral_commission_bps=100)
        referral = attach_referral(registry)
        stake = make_stake_token(chain, registry)
        registry.add(GOV, 100, stake.address)
        registry.deposit(BOB, 0, 1000, DAVE)
        assert referral.get_referrer(BOB) == DAVE

        chain.mine(10)
        harvest(registry, 0, BOB)
        assert token.balance_of(BOB) == 1000
        assert token.balance_of(DAVE) == 10

    def test_referrer_immutable(self):
        chain, _, registry = make_registry()
        referral = attach_referral(registry)
        stake = make_stake_token(chain, registry)
        registry.add(GOV, 100, stake.address)
        registry.deposit(BOB, 0, 100, DAVE)
        registry.deposit(BOB, 0, 100, EVE)
        assert referral.get_referrer(BOB) == DAVE
        assert referral.referral_count(EVE) == 0

    def test_zero_address_referrer_ignored(self):
        chain, _, registry = make_registry()
        referral = attach_referral(registry)
        stake = make_stake_token(chain, registry)
        registry.add(GOV, 100, stake.address)
        registry.deposit(BOB, 0, 100, ZERO_ADDRESS)
        assert referral.get_referrer(BOB) is None

    def test_self_referral_rejected(self):
        chain, _, registry = make_registry()
        attach_referral(registry)
        stake = make_stake_token(chain, registry)
        registry.add(GOV, 100, stake.address)
        with pytest.raises(SelfReferralError):
            registry.deposit(BOB, 0, 100, BOB)
        assert registry.user_info(0, BOB).amount == 0

    def test_no_referral_contract_means_no_commission(self):
        chain, token, registry = make_registry(reward_per_block=100, referral_commission_bps=100)
        stake = make_stake_token(chain, registry)
        registry.add(GOV, 100, stake.address)
        registry.deposit(BOB, 0, 1000, DAVE)
        chain.mine(10)
        harvest(registry, 0, BOB)
        assert token.balance_of(DAVE) == 0


# ══════════════════════════════════════════════════════════════════════
#  WITHDRAW AND ERRORS
# ══════════════════════════════════════════════════════════════════════


class TestWithdraw:

    def test_withdraw_returns_stake_and_rewards(self):
        chain, token, registry = make_registry(reward_per_block=10)
        stake = make_stake_token(chain, registry)
        registry.add(GOV, 100, stake.address)
        registry.deposit(BOB, 0, 1000)
        chain.mine(5)
        registry.withdraw(BOB, 0, 400)
        assert stake.balance_of(BOB) == STAKE_BALANCE - 600
        assert token.balance_of(BOB) == 50
        assert registry.staking_power(0, BOB) == 600
        info = registry.user_info(0, BOB)
        assert info.reward_debt == 600 * registry.pool_info(0).acc_reward_per_share // ACC_REWARD_PRECISION

    def test_withdraw_more_than_staked(self):
        chain, _, registry = make_registry()
        stake = make_stake_token(chain, registry)
        registry.add(GOV, 100, stake.address)
        registry.deposit(BOB, 0, 100)
        with pytest.raises(InsufficientStakeError, match="not good"):
            registry.withdraw(BOB, 0, 101)

    def test_withdraw_unknown_pool(self):
        _, _, registry = make_registry()
        with pytest.raises(UnknownPoolError):
            registry.withdraw(BOB, 0, 0)

    def test_failed_deposit_reverts_settlement(self):
        chain, token, registry = make_registry()
        stake = make_stake_token(chain, registry, holders=(BOB,))
        registry.add(GOV, 100, stake.address)
        registry.deposit(BOB, 0, 100)
        chain.mine(5)
        before = registry.pool_info(0)
        with pytest.raises(InsufficientAllowanceError):
            registry.deposit(EVE, 0, 10)
        assert registry.pool_info(0) == before
        assert token.total_supply == 0
        assert registry.user_info(0, EVE).amount == 0

    def test_governance_transfer(self):
        chain, _, registry = make_registry()
        stake = make_stake_token(chain, registry)
        registry.set_governance(GOV, BOB)
        with pytest.raises(UnauthorizedError):
            registry.add(GOV, 100, stake.address)
        registry.add(BOB, 100, stake.address)
        assert registry.pool_length == 1
