"""
Host Ledger

``Chain`` is the serialized execution environment the contracts live in:

  - current block height and timestamp (advanced explicitly by the caller)
  - contract registry (address -> contract) and per-deployer nonces
  - native value balances (forwarded by the timelock)
  - per-operation atomicity: the outermost mutating call snapshots every
    contract and restores the snapshot if the call raises

Usage:

    chain = Chain(block_number=0)
    token = FungibleToken(chain, ALICE, "Stake", "STK", 1_000)
    chain.mine(10)
"""

from __future__ import annotations

import time
from contextlib import contextmanager
from typing import TYPE_CHECKING, Any, Dict, Iterator, Optional, Type, TypeVar

from ..constants import BLOCK_TIME
from ..exceptions import InsufficientBalanceError, InvalidAddressError, ValueFarmError
from ..logger import get_logger
from .address import generate_contract_address, to_address

if TYPE_CHECKING:
    from .contract import Contract

logger = get_logger(__name__)

C = TypeVar("C")


class Chain:
    """
    Deterministic single-threaded host for the protocol contracts.
    """

    def __init__(
        self,
        block_number: int = 0,
        timestamp: Optional[int] = None,
        block_time: int = BLOCK_TIME,
    ):
        if block_number < 0:
            raise ValueFarmError("Block number cannot be negative")
        if block_time <= 0:
            raise ValueFarmError("Block time must be positive")
        self.block_number = block_number
        self.timestamp = int(time.time()) if timestamp is None else int(timestamp)
        self.block_time = block_time

        self._contracts: Dict[str, "Contract"] = {}
        self._nonces: Dict[str, int] = {}
        self._native_balances: Dict[str, int] = {}

        self._depth = 0

    # =====================================================================
    #  Block / time control
    # =====================================================================

    def mine(self, blocks: int = 1) -> int:
        """Advance *blocks* blocks, moving the clock by block_time each."""
        if blocks < 0:
            raise ValueFarmError("Cannot mine a negative number of blocks")
        self.block_number += blocks
        self.timestamp += blocks * self.block_time
        return self.block_number

    def advance_to_block(self, block_number: int) -> int:
        if block_number < self.block_number:
            raise ValueFarmError(
                f"Block {block_number} is behind current block {self.block_number}"
            )
        return self.mine(block_number - self.block_number)

    def advance_time(self, seconds: int) -> int:
        """Move the clock forward without producing blocks."""
        if seconds < 0:
            raise ValueFarmError("Cannot move time backwards")
        self.timestamp += seconds
        return self.timestamp

    # =====================================================================
    #  Contract registry
    # =====================================================================

    def register(self, contract: "Contract", deployer: str) -> str:
        deployer = to_address(deployer)
        nonce = self._nonces.get(deployer, 0)
        address = generate_contract_address(deployer, nonce)
        self._nonces[deployer] = nonce + 1
        self._contracts[address] = contract
        logger.debug(f"Deployed {type(contract).__name__} at {address}")
        return address

    def get_contract(self, address: str, expected: Optional[Type[C]] = None) -> Any:
        address = to_address(address)
        contract = self._contracts.get(address)
        if contract is None:
            raise InvalidAddressError(f"No contract deployed at {address}")
        if expected is not None and not isinstance(contract, expected):
            raise InvalidAddressError(
                f"Contract at {address} is {type(contract).__name__}, "
                f"expected {expected.__name__}"
            )
        return contract

    def is_contract(self, address: str) -> bool:
        return to_address(address) in self._contracts

    def nonce_of(self, address: str) -> int:
        return self._nonces.get(to_address(address), 0)

    # =====================================================================
    #  Native value
    # =====================================================================

    def balance_of(self, address: str) -> int:
        return self._native_balances.get(to_address(address), 0)

    def fund(self, address: str, amount: int) -> None:
        """Credit native value out of thin air (genesis / test faucet)."""
        if amount < 0:
            raise ValueFarmError("Amount cannot be negative")
        address = to_address(address)
        self._native_balances[address] = self.balance_of(address) + amount

    def transfer_value(self, sender: str, recipient: str, amount: int) -> None:
        if amount < 0:
            raise ValueFarmError("Amount cannot be negative")
        if amount == 0:
            return
        sender, recipient = to_address(sender), to_address(recipient)
        bal = self.balance_of(sender)
        if bal < amount:
            raise InsufficientBalanceError(
                f"{sender} native balance {bal} < {amount}"
            )
        self._native_balances[sender] = bal - amount
        self._native_balances[recipient] = self.balance_of(recipient) + amount

    # =====================================================================
    #  Atomicity
    # =====================================================================

    @contextmanager
    def atomic(self) -> Iterator[None]:
        """
        Make the enclosed operation all-or-nothing.

        Only the outermost level snapshots; nested calls join it.
        """
        snapshot = self.take_snapshot() if self._depth == 0 else None
        self._depth += 1
        try:
            yield
        except Exception:
            if snapshot is not None:
                self._restore_snapshot(snapshot)
            raise
        finally:
            self._depth -= 1

    @property
    def in_transaction(self) -> bool:
        return self._depth > 0

    def take_snapshot(self) -> Dict[str, Any]:
        """Capture current state for potential revert."""
        return {
            "contracts": {
                addr: c.snapshot_state() for addr, c in self._contracts.items()
            },
            "registry": dict(self._contracts),
            "nonces": dict(self._nonces),
            "native_balances": dict(self._native_balances),
        }

    def _restore_snapshot(self, snapshot: Dict[str, Any]) -> None:
        self._contracts = snapshot["registry"]
        self._nonces = snapshot["nonces"]
        self._native_balances = snapshot["native_balances"]
        for addr, state in snapshot["contracts"].items():
            self._contracts[addr].restore_state(state)

    def __repr__(self) -> str:
        return (
            f"<Chain block={self.block_number} timestamp={self.timestamp} "
            f"contracts={len(self._contracts)}>"
        )
