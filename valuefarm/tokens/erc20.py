"""
Fungible Token Ledger

ERC-20 style token used for the backing asset, the stake tokens, and as the
base of the collateral-backed reward token:
  - transfer, approve, transferFrom, balanceOf, totalSupply
  - internal _mint / _burn hooks for subclasses
  - Transfer / Approval events

Invariant: total_supply == sum of all balances.
"""

from typing import Any, Dict, Tuple

from ..chain import Chain, Contract, to_address, transaction
from ..exceptions import (
    InsufficientAllowanceError,
    InsufficientBalanceError,
    ValueFarmError,
)
from ..logger import get_logger

logger = get_logger(__name__)

# Allowance value treated as unlimited (never decremented)
MAX_UINT256 = 2**256 - 1


class FungibleToken(Contract):
    """
    Minimal ERC-20 ledger.

    Mirrors ERC-20 semantics:
        - balance_of(address) -> int
        - transfer(sender, recipient, amount)
        - approve(owner, spender, amount)
        - transfer_from(spender, owner, recipient, amount)
        - total_supply -> int
    """

    EXTERNAL_FUNCTIONS = {
        "transfer(address,uint256)": "transfer",
        "approve(address,uint256)": "approve",
        "transferFrom(address,address,uint256)": "transfer_from",
    }

    def __init__(
        self,
        chain: Chain,
        deployer: str,
        name: str,
        symbol: str,
        initial_supply: int = 0,
        decimals: int = 18,
    ):
        """
        Args:
            chain: Host ledger
            deployer: Address of deploying account (receives initial supply)
            name: Human-readable token name
            symbol: Short ticker (e.g. "LP")
            initial_supply: Initial minted supply
            decimals: Fractional digits
        """
        if not name:
            raise ValueFarmError("Token name cannot be empty")
        if not symbol:
            raise ValueFarmError("Token symbol cannot be empty")
        if decimals < 0 or decimals > 18:
            raise ValueFarmError(f"Decimals must be 0-18, got {decimals}")
        if initial_supply < 0:
            raise ValueFarmError("Total supply cannot be negative")

        super().__init__(chain, deployer)
        self.name = name
        self.symbol = symbol
        self.decimals = decimals
        self._total_supply = 0
        self._balances: Dict[str, int] = {}
        self._allowances: Dict[Tuple[str, str], int] = {}  # (owner, spender)

        if initial_supply > 0:
            self._mint(self.deployer, initial_supply)

        logger.info(f"Token deployed: {symbol} ({name}) at {self.address}, supply={initial_supply}")

    # ── Read-only views ───────────────────────────────────────────────

    @property
    def total_supply(self) -> int:
        return self._total_supply

    def balance_of(self, address: str) -> int:
        return self._balances.get(to_address(address), 0)

    def allowance(self, owner: str, spender: str) -> int:
        return self._allowances.get((to_address(owner), to_address(spender)), 0)

    # ── Core ERC-20 operations ────────────────────────────────────────

    @transaction
    def transfer(self, sender: str, recipient: str, amount: int) -> bool:
        self._transfer(to_address(sender), to_address(recipient), amount)
        return True

    @transaction
    def approve(self, owner: str, spender: str, amount: int) -> bool:
        if amount < 0:
            raise ValueFarmError("Allowance amount cannot be negative")
        owner, spender = to_address(owner), to_address(spender)
        self._allowances[(owner, spender)] = amount
        self._emit("Approval", owner=owner, spender=spender, value=amount)
        logger.debug(f"Approve: {owner} → {spender} allowance={amount} {self.symbol}")
        return True

    @transaction
    def transfer_from(self, spender: str, owner: str, recipient: str, amount: int) -> bool:
        """
        Transfer on behalf of *owner* using *spender*'s allowance.
        """
        spender, owner = to_address(spender), to_address(owner)
        self._spend_allowance(owner, spender, amount)
        self._transfer(owner, to_address(recipient), amount)
        return True

    # ── Internal hooks ────────────────────────────────────────────────

    def _transfer(self, sender: str, recipient: str, amount: int) -> None:
        if amount < 0:
            raise ValueFarmError("Transfer amount cannot be negative")
        bal = self._balances.get(sender, 0)
        if bal < amount:
            raise InsufficientBalanceError(
                f"ERC20: transfer amount exceeds balance ({sender} has {bal}, needs {amount})"
            )
        self._balances[sender] = bal - amount
        self._balances[recipient] = self._balances.get(recipient, 0) + amount
        self._emit("Transfer", sender=sender, recipient=recipient, value=amount)
        logger.debug(f"Transfer: {sender} → {recipient} {amount} {self.symbol}")

    def _spend_allowance(self, owner: str, spender: str, amount: int) -> None:
        allow = self._allowances.get((owner, spender), 0)
        if allow == MAX_UINT256:
            return
        if allow < amount:
            raise InsufficientAllowanceError(
                f"ERC20: transfer amount exceeds allowance ({allow} < {amount})"
            )
        self._allowances[(owner, spender)] = allow - amount

    def _mint(self, account: str, amount: int) -> None:
        if amount < 0:
            raise ValueFarmError("Mint amount cannot be negative")
        self._total_supply += amount
        self._balances[account] = self._balances.get(account, 0) + amount
        self._emit("Transfer", sender=None, recipient=account, value=amount)

    def _burn(self, account: str, amount: int) -> None:
        if amount < 0:
            raise ValueFarmError("Burn amount cannot be negative")
        bal = self._balances.get(account, 0)
        if bal < amount:
            raise InsufficientBalanceError(
                f"ERC20: burn amount exceeds balance ({account} has {bal}, needs {amount})"
            )
        self._balances[account] = bal - amount
        self._total_supply -= amount
        self._emit("Transfer", sender=account, recipient=None, value=amount)

    # ── Serialization ─────────────────────────────────────────────────

    def to_dict(self) -> Dict[str, Any]:
        return {
            "address": self.address,
            "name": self.name,
            "symbol": self.symbol,
            "decimals": self.decimals,
            "totalSupply": str(self._total_supply),
            "deployer": self.deployer,
            "holders": len([b for b in self._balances.values() if b > 0]),
        }

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.symbol} supply={self._total_supply}>"
