"""
Contract Base

Every protocol component (tokens, pool registry, referral registry,
timelock) is a ``Contract`` registered on a ``Chain``.  Contracts keep only
plain data in their attributes and refer to each other by address, so the
chain can snapshot and restore them wholesale.
"""

from __future__ import annotations

import copy
import functools
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Callable, Dict, List

from ..exceptions import UnknownFunctionError
from .abi import canonical_signature, decode_arguments
from .address import to_address

if TYPE_CHECKING:
    from .chain import Chain


@dataclass(frozen=True)
class ContractEvent:
    """A log entry emitted by a contract."""
    name: str
    contract: str
    args: Dict[str, Any] = field(default_factory=dict)
    block_number: int = 0
    timestamp: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "event": self.name,
            "contract": self.contract,
            "args": dict(self.args),
            "blockNumber": self.block_number,
            "timestamp": self.timestamp,
        }


def transaction(fn: Callable) -> Callable:
    """Run a public mutating method as one all-or-nothing unit."""
    @functools.wraps(fn)
    def wrapper(self: "Contract", *args, **kwargs):
        with self.chain.atomic():
            return fn(self, *args, **kwargs)
    return wrapper


class Contract:
    """
    Base class for chain-resident contracts.

    Subclasses list the Solidity-style signatures they expose to forwarded
    calls in ``EXTERNAL_FUNCTIONS`` (signature -> method name).  Every
    exposed method takes the caller as its first argument.
    """

    EXTERNAL_FUNCTIONS: Dict[str, str] = {}

    def __init__(self, chain: "Chain", deployer: str):
        self.chain = chain
        self.deployer = to_address(deployer)
        self._events: List[ContractEvent] = []
        self.address = chain.register(self, self.deployer)

    # ── Events ────────────────────────────────────────────────────────

    def _emit(self, name: str, **args: Any) -> ContractEvent:
        event = ContractEvent(
            name=name,
            contract=self.address,
            args=args,
            block_number=self.chain.block_number,
            timestamp=self.chain.timestamp,
        )
        self._events.append(event)
        return event

    @property
    def events(self) -> List[ContractEvent]:
        return list(self._events)

    def events_named(self, name: str) -> List[ContractEvent]:
        return [e for e in self._events if e.name == name]

    # ── Forwarded calls ───────────────────────────────────────────────

    def external_function(self, signature: str) -> Callable:
        method_name = self.EXTERNAL_FUNCTIONS.get(canonical_signature(signature))
        if method_name is None:
            raise UnknownFunctionError(
                f"{type(self).__name__} does not expose {signature}"
            )
        return getattr(self, method_name)

    def call_external(self, sender: str, signature: str, data: bytes) -> Any:
        """Decode *data* for *signature* and invoke it as *sender*."""
        handler = self.external_function(signature)
        args = decode_arguments(signature, data)
        return handler(sender, *args)

    # ── Snapshot / restore ────────────────────────────────────────────

    def snapshot_state(self) -> Dict[str, Any]:
        """
        Deep copy of every attribute except the chain back-reference.

        The event log is append-only, so only its length is recorded.
        """
        state = copy.deepcopy(
            {k: v for k, v in vars(self).items() if k not in ("chain", "_events")}
        )
        state["_event_count"] = len(self._events)
        return state

    def restore_state(self, state: Dict[str, Any]) -> None:
        chain, events = self.chain, self._events
        state = dict(state)
        count = state.pop("_event_count", len(events))
        self.__dict__.clear()
        self.__dict__.update(state)
        del events[count:]
        self._events = events
        self.chain = chain

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.address}>"
