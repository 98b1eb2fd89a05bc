"""
Delayed Executor (Timelock)

Every privileged change to the protocol goes through here once governance
has been handed over:

  - the admin queues a call (target, value, signature, data, eta) with
    ``eta >= now + delay``
  - after ``eta`` and before ``eta + GRACE_PERIOD`` the admin may execute it
  - the admin may cancel a queued call at any time
  - the delay itself and the admin role can only be changed through a
    queued call to the timelock, apart from the one-time bootstrap of the
    pending admin

A queued call is identified by keccak256 of its ABI-encoded fields.
"""

from dataclasses import dataclass
from enum import IntEnum
from typing import Any, Dict, List, Optional

from eth_abi import encode
from eth_abi.exceptions import DecodingError
from eth_utils import keccak

from ..chain import Chain, Contract, to_address, transaction
from ..constants import (
    TIMELOCK_DEFAULT_DELAY,
    TIMELOCK_GRACE_PERIOD,
    TIMELOCK_MAXIMUM_DELAY,
    TIMELOCK_MINIMUM_DELAY,
)
from ..exceptions import (
    EtaTooSoonError,
    InvalidDelayError,
    NotQueuedError,
    StaleTransactionError,
    TimeLockNotSurpassedError,
    UnauthorizedError,
    UnderlyingCallRevertedError,
    ValueFarmError,
)
from ..logger import get_logger

logger = get_logger(__name__)

GRACE_PERIOD = TIMELOCK_GRACE_PERIOD
MINIMUM_DELAY = TIMELOCK_MINIMUM_DELAY
MAXIMUM_DELAY = TIMELOCK_MAXIMUM_DELAY


class TimelockStatus(IntEnum):
    """Status of a call as seen by the timelock at the current timestamp."""
    NONE = 0        # Not queued (never, cancelled or already executed)
    QUEUED = 1      # Waiting for eta
    READY = 2       # Executable now
    EXPIRED = 3     # Grace period passed


@dataclass
class QueuedTransaction:
    """
    A call awaiting execution.

    Attributes:
        tx_hash:    keccak256 of the encoded call
        target:     Contract (or account) the call goes to
        value:      Native value forwarded with the call
        signature:  Solidity-style function signature, "" for a plain transfer
        data:       ABI-encoded arguments
        eta:        Earliest execution timestamp
        queued_at:  Timestamp when queued
    """
    tx_hash: str
    target: str
    value: int
    signature: str
    data: bytes
    eta: int
    queued_at: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "txHash": self.tx_hash,
            "target": self.target,
            "value": str(self.value),
            "signature": self.signature,
            "data": "0x" + self.data.hex(),
            "eta": self.eta,
            "queuedAt": self.queued_at,
        }


def compute_tx_hash(target: str, value: int, signature: str, data: bytes, eta: int) -> str:
    """keccak256(abi.encode(target, value, signature, data, eta)) as 0x-hex."""
    if value < 0:
        raise ValueFarmError("Value cannot be negative")
    if eta < 0:
        raise ValueFarmError("Eta cannot be negative")
    encoded = encode(
        ["address", "uint256", "string", "bytes", "uint256"],
        [to_address(target), value, signature, bytes(data), eta],
    )
    return "0x" + keccak(encoded).hex()


class Timelock(Contract):
    """
    Admin-controlled delayed executor.
    """

    EXTERNAL_FUNCTIONS = {
        "setDelay(uint256)": "set_delay",
        "setPendingAdmin(address)": "set_pending_admin",
        "acceptAdmin()": "accept_admin",
    }

    def __init__(
        self,
        chain: Chain,
        deployer: str,
        admin: str,
        delay: int = TIMELOCK_DEFAULT_DELAY,
    ):
        _validate_delay(delay)
        super().__init__(chain, deployer)
        self.admin = to_address(admin)
        self.pending_admin: Optional[str] = None
        self.delay = delay
        self.admin_initialized = False
        self._queued: Dict[str, QueuedTransaction] = {}

        logger.info(f"Timelock deployed at {self.address}: admin={self.admin}, delay={delay}s")

    # ── Views ─────────────────────────────────────────────────────────

    def get_tx_hash(self, target: str, value: int, signature: str, data: bytes, eta: int) -> str:
        return compute_tx_hash(target, value, signature, data, eta)

    def is_queued(self, tx_hash: str) -> bool:
        return tx_hash in self._queued

    def queued_transactions(self) -> List[QueuedTransaction]:
        return sorted(self._queued.values(), key=lambda q: q.eta)

    def transaction_status(
        self, target: str, value: int, signature: str, data: bytes, eta: int
    ) -> TimelockStatus:
        tx_hash = compute_tx_hash(target, value, signature, data, eta)
        if tx_hash not in self._queued:
            return TimelockStatus.NONE
        now = self.chain.timestamp
        if now < eta:
            return TimelockStatus.QUEUED
        if now > eta + GRACE_PERIOD:
            return TimelockStatus.EXPIRED
        return TimelockStatus.READY

    # ── Guards ────────────────────────────────────────────────────────

    def _require_admin(self, sender: str, action: str) -> None:
        if to_address(sender) != self.admin:
            raise UnauthorizedError(f"Timelock::{action}: Call must come from admin.")

    def _require_self(self, sender: str, action: str) -> None:
        if to_address(sender) != self.address:
            raise UnauthorizedError(f"Timelock::{action}: Call must come from Timelock.")

    # ── Native value ──────────────────────────────────────────────────

    @transaction
    def receive(self, sender: str, value: int) -> None:
        """Accept native value so queued calls can forward it."""
        self.chain.transfer_value(sender, self.address, value)

    # ── Self-administration ───────────────────────────────────────────

    @transaction
    def set_delay(self, sender: str, delay: int) -> None:
        self._require_self(sender, "setDelay")
        _validate_delay(delay)
        self.delay = delay
        self._emit("NewDelay", delay=delay)
        logger.info(f"Timelock delay set to {delay}s")

    @transaction
    def accept_admin(self, sender: str) -> None:
        sender = to_address(sender)
        if self.pending_admin is None or sender != self.pending_admin:
            raise UnauthorizedError(
                "Timelock::acceptAdmin: Call must come from pendingAdmin."
            )
        self.admin = sender
        self.pending_admin = None
        self._emit("NewAdmin", admin=sender)
        logger.info(f"Timelock admin is now {sender}")

    @transaction
    def set_pending_admin(self, sender: str, pending_admin: str) -> None:
        """
        Nominate the next admin.

        Until the admin has used its one-time bootstrap call, the admin may
        nominate directly; afterwards only a queued call can.
        """
        sender = to_address(sender)
        if self.admin_initialized:
            self._require_self(sender, "setPendingAdmin")
        else:
            if sender != self.admin:
                raise UnauthorizedError(
                    "Timelock::setPendingAdmin: First call must come from admin."
                )
            self.admin_initialized = True
        self.pending_admin = to_address(pending_admin)
        self._emit("NewPendingAdmin", pending_admin=self.pending_admin)
        logger.info(f"Timelock pending admin set to {self.pending_admin}")

    # ── Queue lifecycle ───────────────────────────────────────────────

    @transaction
    def queue_transaction(
        self,
        sender: str,
        target: str,
        value: int,
        signature: str,
        data: bytes,
        eta: int,
    ) -> str:
        self._require_admin(sender, "queueTransaction")
        target = to_address(target)
        if value < 0:
            raise ValueFarmError("Value cannot be negative")
        if eta < self.chain.timestamp + self.delay:
            raise EtaTooSoonError(
                "Timelock::queueTransaction: Estimated execution block must "
                f"satisfy delay (eta={eta}, earliest={self.chain.timestamp + self.delay})"
            )
        data = bytes(data)
        tx_hash = compute_tx_hash(target, value, signature, data, eta)
        self._queued[tx_hash] = QueuedTransaction(
            tx_hash=tx_hash,
            target=target,
            value=value,
            signature=signature,
            data=data,
            eta=eta,
            queued_at=self.chain.timestamp,
        )
        self._emit(
            "QueueTransaction",
            tx_hash=tx_hash, target=target, value=value,
            signature=signature, data=data, eta=eta,
        )
        logger.info(f"Queued {tx_hash}: {signature or '<transfer>'} → {target} eta={eta}")
        return tx_hash

    @transaction
    def cancel_transaction(
        self,
        sender: str,
        target: str,
        value: int,
        signature: str,
        data: bytes,
        eta: int,
    ) -> str:
        self._require_admin(sender, "cancelTransaction")
        data = bytes(data)
        tx_hash = compute_tx_hash(target, value, signature, data, eta)
        self._queued.pop(tx_hash, None)
        self._emit(
            "CancelTransaction",
            tx_hash=tx_hash, target=to_address(target), value=value,
            signature=signature, data=data, eta=eta,
        )
        logger.info(f"Cancelled {tx_hash}")
        return tx_hash

    @transaction
    def execute_transaction(
        self,
        sender: str,
        target: str,
        value: int,
        signature: str,
        data: bytes,
        eta: int,
    ) -> Any:
        """
        Run a queued call whose eta has passed.

        Returns whatever the target function returns.
        """
        self._require_admin(sender, "executeTransaction")
        target = to_address(target)
        data = bytes(data)
        tx_hash = compute_tx_hash(target, value, signature, data, eta)
        now = self.chain.timestamp
        if tx_hash not in self._queued:
            raise NotQueuedError(
                "Timelock::executeTransaction: Transaction hasn't been queued."
            )
        if now < eta:
            raise TimeLockNotSurpassedError(
                "Timelock::executeTransaction: Transaction hasn't surpassed time lock."
            )
        if now > eta + GRACE_PERIOD:
            raise StaleTransactionError(
                "Timelock::executeTransaction: Transaction is stale."
            )

        del self._queued[tx_hash]
        self.chain.transfer_value(self.address, target, value)

        result = None
        if signature:
            try:
                callee = self.chain.get_contract(target)
                result = callee.call_external(self.address, signature, data)
            except (ValueFarmError, DecodingError) as exc:
                logger.warning(f"Execution of {tx_hash} reverted: {exc}")
                raise UnderlyingCallRevertedError(
                    f"Timelock::executeTransaction: Transaction execution reverted. ({exc})"
                ) from exc

        self._emit(
            "ExecuteTransaction",
            tx_hash=tx_hash, target=target, value=value,
            signature=signature, data=data, eta=eta,
        )
        logger.info(f"Executed {tx_hash}: {signature or '<transfer>'} → {target}")
        return result

    def to_dict(self) -> Dict[str, Any]:
        return {
            "address": self.address,
            "admin": self.admin,
            "pendingAdmin": self.pending_admin,
            "delay": self.delay,
            "adminInitialized": self.admin_initialized,
            "queued": [q.to_dict() for q in self.queued_transactions()],
        }


def _validate_delay(delay: int) -> None:
    if delay < MINIMUM_DELAY:
        raise InvalidDelayError(
            f"Timelock::setDelay: Delay must exceed minimum delay ({delay} < {MINIMUM_DELAY})"
        )
    if delay > MAXIMUM_DELAY:
        raise InvalidDelayError(
            f"Timelock::setDelay: Delay must not exceed maximum delay ({delay} > {MAXIMUM_DELAY})"
        )
