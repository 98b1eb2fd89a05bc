"""
Collateral-Backed Liquidity Token

A capped, mintable and burnable token that is partly backed 1:1 by a locked
external asset:

  - deposit / withdraw lock and release the backing asset, minting and
    burning tokens 1:1 (outside the cap)
  - governance and approved minters mint new, unbacked supply
  - the cap only bounds the unbacked part of the supply:
        cap >= total_supply - locked_collateral
  - governance can recover tokens sent here by mistake, but never the
    collateral that backs live supply
"""

from typing import Any, Dict, Set

from ..chain import Chain, to_address, transaction
from ..constants import TOKEN_DECIMALS, TOKEN_NAME, TOKEN_SYMBOL
from ..exceptions import (
    CapBelowSupplyError,
    CapExceededError,
    ExceedsLockedCollateralError,
    ExceedsStuckAmountError,
    UnauthorizedError,
    ValueFarmError,
)
from ..logger import get_logger
from .erc20 import FungibleToken

logger = get_logger(__name__)


class CollateralToken(FungibleToken):
    """
    Reward token minted by the pool registry and backed by ``collateral``.

    ``governance`` is the single privileged principal; it is normally
    handed to the timelock after deployment.
    """

    EXTERNAL_FUNCTIONS = {
        **FungibleToken.EXTERNAL_FUNCTIONS,
        "deposit(uint256)": "deposit",
        "withdraw(uint256)": "withdraw",
        "mint(address,uint256)": "mint",
        "burn(uint256)": "burn",
        "burnFrom(address,uint256)": "burn_from",
        "setCap(uint256)": "set_cap",
        "addMinter(address)": "add_minter",
        "removeMinter(address)": "remove_minter",
        "setGovernance(address)": "set_governance",
        "transferOwnership(address)": "set_governance",
        "governanceRecoverUnsupported(address,address,uint256)": "governance_recover_unsupported",
    }

    def __init__(
        self,
        chain: Chain,
        deployer: str,
        collateral: str,
        cap: int,
        name: str = TOKEN_NAME,
        symbol: str = TOKEN_SYMBOL,
        decimals: int = TOKEN_DECIMALS,
    ):
        if cap < 0:
            raise ValueFarmError("Cap cannot be negative")
        collateral = to_address(collateral)
        super().__init__(chain, deployer, name, symbol, 0, decimals)
        self.collateral = collateral
        self.cap = cap
        self.locked_collateral = 0
        self.governance = self.deployer
        self._minters: Set[str] = set()

    # ── Views ─────────────────────────────────────────────────────────

    def is_minter(self, account: str) -> bool:
        return to_address(account) in self._minters

    @property
    def minters(self) -> Set[str]:
        return set(self._minters)

    def mintable_supply(self) -> int:
        """How much new unbacked supply the cap still allows."""
        return max(0, self.cap + self.locked_collateral - self._total_supply)

    # ── Guards ────────────────────────────────────────────────────────

    def _require_governance(self, sender: str) -> str:
        sender = to_address(sender)
        if sender != self.governance:
            raise UnauthorizedError(f"!governance: {sender}")
        return sender

    # ── Collateral ────────────────────────────────────────────────────

    @transaction
    def deposit(self, sender: str, amount: int) -> None:
        """Lock *amount* of the backing asset and mint the same amount."""
        sender = to_address(sender)
        if amount < 0:
            raise ValueFarmError("Deposit amount cannot be negative")
        backing = self.chain.get_contract(self.collateral, FungibleToken)
        backing.transfer_from(self.address, sender, self.address, amount)
        self.locked_collateral += amount
        self._mint(sender, amount)
        self._emit("Deposit", account=sender, amount=amount)
        logger.info(f"Collateral deposit: {sender} locked {amount}, total locked={self.locked_collateral}")

    @transaction
    def withdraw(self, sender: str, amount: int) -> None:
        """Burn *amount* and release the same amount of the backing asset."""
        sender = to_address(sender)
        if amount < 0:
            raise ValueFarmError("Withdraw amount cannot be negative")
        if amount > self.locked_collateral:
            raise ExceedsLockedCollateralError(
                f"There is not enough locked collateral to withdraw "
                f"({amount} > {self.locked_collateral})"
            )
        self._burn(sender, amount)
        self.locked_collateral -= amount
        backing = self.chain.get_contract(self.collateral, FungibleToken)
        backing.transfer(self.address, sender, amount)
        self._emit("Withdraw", account=sender, amount=amount)
        logger.info(f"Collateral withdraw: {sender} released {amount}, total locked={self.locked_collateral}")

    # ── Supply ────────────────────────────────────────────────────────

    @transaction
    def mint(self, sender: str, to: str, amount: int) -> None:
        sender, to = to_address(sender), to_address(to)
        if sender != self.governance and sender not in self._minters:
            raise UnauthorizedError("!governance && !minter")
        if amount < 0:
            raise ValueFarmError("Mint amount cannot be negative")
        if self._total_supply + amount - self.locked_collateral > self.cap:
            raise CapExceededError(
                f"ERC20Capped: cap exceeded (supply={self._total_supply}, "
                f"locked={self.locked_collateral}, cap={self.cap}, mint={amount})"
            )
        self._mint(to, amount)

    @transaction
    def burn(self, sender: str, amount: int) -> None:
        self._burn(to_address(sender), amount)

    @transaction
    def burn_from(self, sender: str, account: str, amount: int) -> None:
        sender, account = to_address(sender), to_address(account)
        self._spend_allowance(account, sender, amount)
        self._burn(account, amount)

    # ── Governance ────────────────────────────────────────────────────

    @transaction
    def set_cap(self, sender: str, new_cap: int) -> None:
        self._require_governance(sender)
        if new_cap < 0:
            raise ValueFarmError("Cap cannot be negative")
        if new_cap + self.locked_collateral < self._total_supply:
            raise CapBelowSupplyError(
                f"_cap (plus locked collateral) is below current supply "
                f"({new_cap} + {self.locked_collateral} < {self._total_supply})"
            )
        old = self.cap
        self.cap = new_cap
        self._emit("CapChanged", old_cap=old, new_cap=new_cap)
        logger.info(f"{self.symbol} cap changed: {old} → {new_cap}")

    @transaction
    def add_minter(self, sender: str, minter: str) -> None:
        self._require_governance(sender)
        minter = to_address(minter)
        self._minters.add(minter)
        self._emit("MinterAdded", minter=minter)
        logger.info(f"{self.symbol} minter added: {minter}")

    @transaction
    def remove_minter(self, sender: str, minter: str) -> None:
        self._require_governance(sender)
        minter = to_address(minter)
        self._minters.discard(minter)
        self._emit("MinterRemoved", minter=minter)
        logger.info(f"{self.symbol} minter removed: {minter}")

    @transaction
    def set_governance(self, sender: str, new_governance: str) -> None:
        self._require_governance(sender)
        new_governance = to_address(new_governance)
        old = self.governance
        self.governance = new_governance
        self._emit("GovernanceTransferred", previous=old, new=new_governance)
        logger.info(f"{self.symbol} governance: {old} → {new_governance}")

    @transaction
    def governance_recover_unsupported(
        self, sender: str, token: str, to: str, amount: int
    ) -> None:
        """
        Move *amount* of *token* held by this contract to *to*.

        For the backing asset only the excess over the locked collateral
        (the "stuck" amount) can be recovered.
        """
        self._require_governance(sender)
        token, to = to_address(token), to_address(to)
        asset = self.chain.get_contract(token, FungibleToken)
        if token == self.collateral:
            stuck = asset.balance_of(self.address) - self.locked_collateral
            if amount > stuck:
                raise ExceedsStuckAmountError(
                    f"cant withdraw more then stuck amount ({amount} > {stuck})"
                )
        asset.transfer(self.address, to, amount)
        logger.warning(f"Recovered {amount} of {token} from {self.symbol} to {to}")

    # ── Serialization ─────────────────────────────────────────────────

    def to_dict(self) -> Dict[str, Any]:
        d = super().to_dict()
        d.update({
            "collateral": self.collateral,
            "cap": str(self.cap),
            "lockedCollateral": str(self.locked_collateral),
            "governance": self.governance,
            "minters": sorted(self._minters),
        })
        return d
