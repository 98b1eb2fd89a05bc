"""
Multi-Pool Reward Distributor

Emits the collateral-backed reward token to stakers, pool by pool, in
proportion to each pool's allocation weight:

  - every block after ``start_block`` emits ``reward_per_block`` tokens,
    split across pools by ``alloc_point / total_alloc_point``
  - accrual is lazy: a pool is settled (``update_pool``) only when an
    operation touches it, and every global change settles all pools first
  - a configurable share of each pool reward goes to the insurance fund
  - deposits may carry a fee (routed to the insurance fund) and a one-time
    referrer who earns a commission on the referee's harvested rewards

Per-user entitlement uses the usual accumulator scheme:

    pending = amount * acc_reward_per_share / 1e12 - reward_debt
"""

from dataclasses import asdict, dataclass
from typing import Any, Dict, List, Optional, Tuple

from ..chain import Chain, Contract, to_address, to_optional_address, transaction
from ..constants import (
    ACC_REWARD_PRECISION,
    DEFAULT_INSURANCE_FUND_BPS,
    DEFAULT_REFERRAL_COMMISSION_BPS,
    MAX_BPS,
    MAX_DEPOSIT_FEE_BPS,
)
from ..exceptions import (
    InsufficientStakeError,
    InvalidFeeError,
    SelfReferralError,
    UnauthorizedError,
    UnknownPoolError,
    ValueFarmError,
)
from ..logger import get_logger
from ..tokens import CollateralToken, FungibleToken
from .referral import ReferralRegistry

logger = get_logger(__name__)


# ══════════════════════════════════════════════════════════════════════
#  STATE RECORDS
# ══════════════════════════════════════════════════════════════════════

@dataclass
class PoolInfo:
    """
    One stake pool.

    Attributes:
        stake_token:          Address of the token staked in this pool
        alloc_point:          Weight relative to total_alloc_point
        last_reward_block:    Last block the accumulator was settled at
        acc_reward_per_share: Cumulative reward per staked unit, 1e12 scale
        deposit_fee_bps:      Share of each deposit routed to the insurance fund
        total_staked:         Sum of all users' staked amounts
    """
    stake_token: str
    alloc_point: int
    last_reward_block: int
    acc_reward_per_share: int = 0
    deposit_fee_bps: int = 0
    total_staked: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "stakeToken": self.stake_token,
            "allocPoint": self.alloc_point,
            "lastRewardBlock": self.last_reward_block,
            "accRewardPerShare": str(self.acc_reward_per_share),
            "depositFeeBps": self.deposit_fee_bps,
            "totalStaked": str(self.total_staked),
        }


@dataclass
class UserInfo:
    amount: int = 0
    reward_debt: int = 0


@dataclass(frozen=True)
class PoolAccrual:
    """Outcome of settling a pool at a given block."""
    pool_reward: int
    insurance_reward: int
    distributable: int
    acc_reward_per_share: int


# ══════════════════════════════════════════════════════════════════════
#  POOL REGISTRY
# ══════════════════════════════════════════════════════════════════════

class PoolRegistry(Contract):
    """
    Reward engine.

    Governance (normally the timelock) adds and reweights pools and tunes
    the emission parameters; users deposit and withdraw directly.  The
    registry must be a minter of ``reward_token``.
    """

    EXTERNAL_FUNCTIONS = {
        "add(uint256,address,bool,uint256)": "add",
        "set(uint256,uint256,bool)": "set",
        "set(uint256,uint256,bool,uint256)": "set",
        "setRewardPerBlock(uint256)": "set_reward_per_block",
        "setRewardReferral(address)": "set_reward_referral",
        "setInsuranceFundBps(uint256)": "set_insurance_fund_bps",
        "setReferralCommissionBps(uint256)": "set_referral_commission_bps",
        "setInsuranceFundAddr(address)": "set_insurance_fund_addr",
        "setGovernance(address)": "set_governance",
        "transferOwnership(address)": "set_governance",
        "deposit(uint256,uint256,address)": "deposit",
        "withdraw(uint256,uint256)": "withdraw",
    }

    def __init__(
        self,
        chain: Chain,
        deployer: str,
        reward_token: str,
        insurance_fund: str,
        reward_per_block: int,
        start_block: int,
        *,
        insurance_fund_bps: int = DEFAULT_INSURANCE_FUND_BPS,
        referral_commission_bps: int = DEFAULT_REFERRAL_COMMISSION_BPS,
    ):
        """
        Args:
            chain: Host ledger
            deployer: Initial governance
            reward_token: CollateralToken the registry mints
            insurance_fund: Receives the insurance skim and deposit fees
            reward_per_block: Global emission per block
            start_block: First block that accrues rewards
            insurance_fund_bps: Share of each pool reward skimmed to the fund
            referral_commission_bps: Referrer commission on harvested rewards
        """
        if reward_per_block < 0:
            raise ValueFarmError("Reward per block cannot be negative")
        if start_block < 0:
            raise ValueFarmError("Start block cannot be negative")
        _validate_bps(insurance_fund_bps, "insurance fund share")
        _validate_bps(referral_commission_bps, "referral commission")
        reward_token = to_address(reward_token)
        chain.get_contract(reward_token, CollateralToken)

        super().__init__(chain, deployer)
        self.reward_token = reward_token
        self.insurance_fund_addr = to_address(insurance_fund)
        self.reward_per_block = reward_per_block
        self.start_block = start_block
        self.insurance_fund_bps = insurance_fund_bps
        self.referral_commission_bps = referral_commission_bps
        self.governance = self.deployer
        self.referral: Optional[str] = None
        self.total_alloc_point = 0

        self._pools: List[PoolInfo] = []
        self._users: Dict[Tuple[int, str], UserInfo] = {}

        logger.info(
            f"Pool registry deployed at {self.address}: "
            f"reward_per_block={reward_per_block}, start_block={start_block}"
        )

    # ── Lookups ───────────────────────────────────────────────────────

    def _token(self) -> CollateralToken:
        return self.chain.get_contract(self.reward_token, CollateralToken)

    def _get_pool(self, pid: int) -> PoolInfo:
        if not isinstance(pid, int) or pid < 0 or pid >= len(self._pools):
            raise UnknownPoolError(f"Pool #{pid} does not exist")
        return self._pools[pid]

    def _require_governance(self, sender: str) -> str:
        sender = to_address(sender)
        if sender != self.governance:
            raise UnauthorizedError("Ownable: caller is not the owner")
        return sender

    # ── Views ─────────────────────────────────────────────────────────

    @property
    def pool_length(self) -> int:
        return len(self._pools)

    def pool_info(self, pid: int) -> PoolInfo:
        return PoolInfo(**asdict(self._get_pool(pid)))

    def user_info(self, pid: int, user: str) -> UserInfo:
        self._get_pool(pid)
        info = self._users.get((pid, to_address(user)))
        return UserInfo(**asdict(info)) if info else UserInfo()

    def staking_power(self, pid: int, user: str) -> int:
        """Voting/staking weight of *user* in pool *pid*: the staked amount."""
        return self.user_info(pid, user).amount

    def get_multiplier(self, from_block: int, to_block: int) -> int:
        """Number of reward-bearing blocks in (from_block, to_block]."""
        from_block = max(from_block, self.start_block)
        return max(0, to_block - from_block)

    def pending_reward(self, pid: int, user: str) -> int:
        """
        Reward *user* would receive if pool *pid* were settled now.

        Replays the same accrual arithmetic as update_pool without
        mutating anything.
        """
        pool = self._get_pool(pid)
        info = self._users.get((pid, to_address(user)))
        if info is None:
            return 0
        acc = pool.acc_reward_per_share
        accrual = self._compute_accrual(pool, self.chain.block_number)
        if accrual is not None:
            acc = accrual.acc_reward_per_share
        return info.amount * acc // ACC_REWARD_PRECISION - info.reward_debt

    # ── Accrual ───────────────────────────────────────────────────────

    def _compute_accrual(self, pool: PoolInfo, block_number: int) -> Optional[PoolAccrual]:
        """None when there is nothing to settle or nobody to pay."""
        if block_number <= pool.last_reward_block or pool.total_staked == 0:
            return None
        multiplier = self.get_multiplier(pool.last_reward_block, block_number)
        if multiplier == 0 or self.total_alloc_point == 0:
            pool_reward = 0
        else:
            pool_reward = (
                multiplier * self.reward_per_block * pool.alloc_point
                // self.total_alloc_point
            )
        pool_reward = min(pool_reward, self._token().mintable_supply())
        insurance = pool_reward * self.insurance_fund_bps // MAX_BPS
        distributable = pool_reward - insurance
        acc = (
            pool.acc_reward_per_share
            + distributable * ACC_REWARD_PRECISION // pool.total_staked
        )
        return PoolAccrual(
            pool_reward=pool_reward,
            insurance_reward=insurance,
            distributable=distributable,
            acc_reward_per_share=acc,
        )

    @transaction
    def update_pool(self, pid: int) -> PoolInfo:
        """Settle pool *pid* up to the current block. Idempotent per block."""
        pool = self._get_pool(pid)
        block_number = self.chain.block_number
        if block_number <= pool.last_reward_block:
            return pool

        accrual = self._compute_accrual(pool, block_number)
        if accrual is None:
            pool.last_reward_block = block_number
            return pool

        token = self._token()
        if accrual.insurance_reward > 0:
            token.mint(self.address, self.insurance_fund_addr, accrual.insurance_reward)
        if accrual.distributable > 0:
            token.mint(self.address, self.address, accrual.distributable)

        pool.acc_reward_per_share = accrual.acc_reward_per_share
        pool.last_reward_block = block_number
        self._emit(
            "PoolUpdated",
            pid=pid,
            pool_reward=accrual.pool_reward,
            acc_reward_per_share=pool.acc_reward_per_share,
        )
        return pool

    @transaction
    def mass_update_pools(self) -> None:
        for pid in range(len(self._pools)):
            self.update_pool(pid)

    # ── Pool lifecycle (governance) ───────────────────────────────────

    @transaction
    def add(
        self,
        sender: str,
        alloc_point: int,
        stake_token: str,
        with_update: bool = True,
        deposit_fee_bps: int = 0,
    ) -> int:
        """Append a pool. Returns its id."""
        self._require_governance(sender)
        if alloc_point < 0:
            raise ValueFarmError("Alloc point cannot be negative")
        _validate_bps(deposit_fee_bps, "deposit fee", MAX_DEPOSIT_FEE_BPS)
        stake_token = to_address(stake_token)
        self.chain.get_contract(stake_token, FungibleToken)

        if with_update:
            self.mass_update_pools()

        last_reward_block = max(self.chain.block_number, self.start_block)
        self.total_alloc_point += alloc_point
        self._pools.append(
            PoolInfo(
                stake_token=stake_token,
                alloc_point=alloc_point,
                last_reward_block=last_reward_block,
                deposit_fee_bps=deposit_fee_bps,
            )
        )
        pid = len(self._pools) - 1
        self._emit("PoolAdded", pid=pid, stake_token=stake_token, alloc_point=alloc_point)
        logger.info(
            f"Pool #{pid} added: stake={stake_token} alloc={alloc_point} "
            f"fee={deposit_fee_bps}bps total_alloc={self.total_alloc_point}"
        )
        return pid

    @transaction
    def set(
        self,
        sender: str,
        pid: int,
        alloc_point: int,
        with_update: bool = True,
        deposit_fee_bps: Optional[int] = None,
    ) -> None:
        """Reweight pool *pid*, optionally changing its deposit fee."""
        self._require_governance(sender)
        pool = self._get_pool(pid)
        if alloc_point < 0:
            raise ValueFarmError("Alloc point cannot be negative")
        if deposit_fee_bps is not None:
            _validate_bps(deposit_fee_bps, "deposit fee", MAX_DEPOSIT_FEE_BPS)

        if with_update:
            self.mass_update_pools()

        old = pool.alloc_point
        self.total_alloc_point = self.total_alloc_point - old + alloc_point
        pool.alloc_point = alloc_point
        if deposit_fee_bps is not None:
            pool.deposit_fee_bps = deposit_fee_bps
        self._emit("PoolSet", pid=pid, alloc_point=alloc_point, deposit_fee_bps=pool.deposit_fee_bps)
        logger.info(
            f"Pool #{pid} alloc {old} → {alloc_point}, total_alloc={self.total_alloc_point}"
        )

    # ── Global parameters (governance) ────────────────────────────────

    @transaction
    def set_reward_per_block(self, sender: str, reward_per_block: int) -> None:
        self._require_governance(sender)
        if reward_per_block < 0:
            raise ValueFarmError("Reward per block cannot be negative")
        self.mass_update_pools()
        old = self.reward_per_block
        self.reward_per_block = reward_per_block
        logger.info(f"Reward per block: {old} → {reward_per_block}")

    @transaction
    def set_insurance_fund_bps(self, sender: str, bps: int) -> None:
        self._require_governance(sender)
        _validate_bps(bps, "insurance fund share")
        self.mass_update_pools()
        self.insurance_fund_bps = bps
        logger.info(f"Insurance fund share set to {bps}bps")

    @transaction
    def set_referral_commission_bps(self, sender: str, bps: int) -> None:
        self._require_governance(sender)
        _validate_bps(bps, "referral commission")
        self.referral_commission_bps = bps
        logger.info(f"Referral commission set to {bps}bps")

    @transaction
    def set_reward_referral(self, sender: str, referral: Optional[str]) -> None:
        self._require_governance(sender)
        referral = to_optional_address(referral)
        if referral is not None:
            self.chain.get_contract(referral, ReferralRegistry)
        self.referral = referral
        logger.info(f"Referral registry set to {referral}")

    @transaction
    def set_governance(self, sender: str, new_governance: str) -> None:
        self._require_governance(sender)
        old = self.governance
        self.governance = to_address(new_governance)
        self._emit("GovernanceTransferred", previous=old, new=self.governance)
        logger.info(f"Pool registry governance: {old} → {self.governance}")

    @transaction
    def set_insurance_fund_addr(self, sender: str, new_addr: str) -> None:
        """Only the current insurance fund may hand its role on."""
        sender = to_address(sender)
        if sender != self.insurance_fund_addr:
            raise UnauthorizedError("insuranceFund: wut?")
        self.insurance_fund_addr = to_address(new_addr)
        logger.info(f"Insurance fund: {sender} → {self.insurance_fund_addr}")

    # ── User operations ───────────────────────────────────────────────

    @transaction
    def deposit(
        self,
        sender: str,
        pid: int,
        amount: int,
        referrer: Optional[str] = None,
    ) -> None:
        """
        Stake *amount* of the pool's token, paying out pending rewards first.

        A zero-amount deposit is a harvest.
        """
        sender = to_address(sender)
        referrer = to_optional_address(referrer)
        if referrer == sender:
            raise SelfReferralError("You cannot refer yourself")
        if amount < 0:
            raise ValueFarmError("Deposit amount cannot be negative")

        pool = self.update_pool(pid)
        user = self._users.setdefault((pid, sender), UserInfo())

        if referrer is not None and self.referral is not None:
            registry = self.chain.get_contract(self.referral, ReferralRegistry)
            registry.record_referral(self.address, referrer, sender)

        if user.amount > 0:
            self._harvest(pid, pool, user, sender)

        if amount > 0:
            stake_token = self.chain.get_contract(pool.stake_token, FungibleToken)
            stake_token.transfer_from(self.address, sender, self.address, amount)
            fee = amount * pool.deposit_fee_bps // MAX_BPS
            if fee > 0:
                stake_token.transfer(self.address, self.insurance_fund_addr, fee)
            staked = amount - fee
            user.amount += staked
            pool.total_staked += staked

        user.reward_debt = user.amount * pool.acc_reward_per_share // ACC_REWARD_PRECISION
        self._emit("Deposit", user=sender, pid=pid, amount=amount)

    @transaction
    def withdraw(self, sender: str, pid: int, amount: int) -> None:
        sender = to_address(sender)
        pool = self._get_pool(pid)
        user = self._users.get((pid, sender), UserInfo())
        if amount < 0:
            raise ValueFarmError("Withdraw amount cannot be negative")
        if amount > user.amount:
            raise InsufficientStakeError(
                f"withdraw: not good ({amount} > staked {user.amount})"
            )

        self.update_pool(pid)
        user = self._users.setdefault((pid, sender), user)
        self._harvest(pid, pool, user, sender)

        if amount > 0:
            user.amount -= amount
            pool.total_staked -= amount
            stake_token = self.chain.get_contract(pool.stake_token, FungibleToken)
            stake_token.transfer(self.address, sender, amount)

        user.reward_debt = user.amount * pool.acc_reward_per_share // ACC_REWARD_PRECISION
        self._emit("Withdraw", user=sender, pid=pid, amount=amount)

    # ── Payouts ───────────────────────────────────────────────────────

    def _harvest(self, pid: int, pool: PoolInfo, user: UserInfo, account: str) -> int:
        pending = (
            user.amount * pool.acc_reward_per_share // ACC_REWARD_PRECISION
            - user.reward_debt
        )
        if pending <= 0:
            return 0
        paid = self._safe_reward_transfer(account, pending)
        commission = self._pay_referral_commission(account, pending)
        self._emit("RewardPaid", user=account, pid=pid, amount=paid, commission=commission)
        return paid

    def _safe_reward_transfer(self, to: str, amount: int) -> int:
        """Pay at most what the pot holds, so rounding dust never blocks a call."""
        token = self._token()
        amount = min(amount, token.balance_of(self.address))
        if amount > 0:
            token.transfer(self.address, to, amount)
        return amount

    def _pay_referral_commission(self, account: str, pending: int) -> int:
        if self.referral is None or self.referral_commission_bps == 0:
            return 0
        registry = self.chain.get_contract(self.referral, ReferralRegistry)
        referrer = registry.get_referrer(account)
        if referrer is None:
            return 0
        token = self._token()
        commission = min(
            pending * self.referral_commission_bps // MAX_BPS,
            token.mintable_supply(),
        )
        if commission > 0:
            token.mint(self.address, referrer, commission)
            self._emit("ReferralCommissionPaid", referrer=referrer, user=account, amount=commission)
        return commission

    # ── Serialization ─────────────────────────────────────────────────

    def to_dict(self) -> Dict[str, Any]:
        return {
            "address": self.address,
            "rewardToken": self.reward_token,
            "insuranceFundAddr": self.insurance_fund_addr,
            "rewardPerBlock": str(self.reward_per_block),
            "startBlock": self.start_block,
            "totalAllocPoint": self.total_alloc_point,
            "insuranceFundBps": self.insurance_fund_bps,
            "referralCommissionBps": self.referral_commission_bps,
            "referral": self.referral,
            "governance": self.governance,
            "pools": [p.to_dict() for p in self._pools],
        }

    def __repr__(self) -> str:
        return (
            f"<PoolRegistry pools={len(self._pools)} "
            f"total_alloc={self.total_alloc_point}>"
        )


def _validate_bps(value: int, what: str, upper: int = MAX_BPS) -> None:
    if value < 0 or value > upper:
        raise InvalidFeeError(f"{what} must be within 0-{upper} bps, got {value}")
