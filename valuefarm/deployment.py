"""
Protocol Deployment

Wires the full system on a chain:

    token    = CollateralToken(collateral, cap)
    referral = ReferralRegistry()
    registry = PoolRegistry(token, insurance_fund, reward_per_block, start_block)
    timelock = Timelock(admin, delay)

then grants the registry minter rights and referral-admin status and, unless
disabled, hands governance of token, registry and referral registry to the
timelock.
"""

from dataclasses import dataclass
from typing import Any, Dict, Optional

from .chain import Chain, to_address
from .config import ProtocolConfig
from .governance import Timelock
from .logger import get_logger
from .rewards import PoolRegistry, ReferralRegistry
from .tokens import CollateralToken, FungibleToken

logger = get_logger(__name__)


@dataclass
class Protocol:
    """Handles to every deployed contract."""
    chain: Chain
    collateral: FungibleToken
    token: CollateralToken
    referral: ReferralRegistry
    registry: PoolRegistry
    timelock: Timelock

    def to_dict(self) -> Dict[str, Any]:
        return {
            "collateral": self.collateral.address,
            "token": self.token.address,
            "referral": self.referral.address,
            "registry": self.registry.address,
            "timelock": self.timelock.address,
        }


def deploy_protocol(
    deployer: str,
    config: Optional[ProtocolConfig] = None,
    chain: Optional[Chain] = None,
) -> Protocol:
    """
    Deploy and wire the protocol as *deployer*.

    Args:
        deployer: Account paying for deployment; initial governance
        config: Protocol parameters (defaults when omitted)
        chain: Existing chain to deploy on (a new one from config.chain otherwise)

    Returns:
        Protocol with every contract handle
    """
    config = config or ProtocolConfig()
    config.validate()
    deployer = to_address(deployer)
    if chain is None:
        chain = Chain(
            block_number=config.chain.block_number,
            timestamp=config.chain.timestamp,
            block_time=config.chain.block_time,
        )

    with chain.atomic():
        if config.token.collateral:
            collateral = chain.get_contract(config.token.collateral, FungibleToken)
        else:
            collateral = FungibleToken(chain, deployer, "Collateral", "COL")

        token = CollateralToken(
            chain,
            deployer,
            collateral.address,
            config.token.cap,
            name=config.token.name,
            symbol=config.token.symbol,
            decimals=config.token.decimals,
        )
        referral = ReferralRegistry(chain, deployer)
        registry = PoolRegistry(
            chain,
            deployer,
            token.address,
            config.rewards.insurance_fund or deployer,
            config.rewards.reward_per_block,
            config.rewards.start_block,
            insurance_fund_bps=config.rewards.insurance_fund_bps,
            referral_commission_bps=config.rewards.referral_commission_bps,
        )
        timelock = Timelock(
            chain,
            deployer,
            config.timelock.admin or deployer,
            config.timelock.delay,
        )

        token.add_minter(deployer, registry.address)
        referral.set_admin_status(deployer, registry.address, True)
        registry.set_reward_referral(deployer, referral.address)

        if config.timelock.transfer_governance:
            token.set_governance(deployer, timelock.address)
            registry.set_governance(deployer, timelock.address)
            referral.transfer_ownership(deployer, timelock.address)

    protocol = Protocol(
        chain=chain,
        collateral=collateral,
        token=token,
        referral=referral,
        registry=registry,
        timelock=timelock,
    )
    logger.info(f"Protocol deployed: {protocol.to_dict()}")
    return protocol
