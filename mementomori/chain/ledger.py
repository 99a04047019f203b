"""
Single-threaded host ledger: clock, native balances, contracts and
all-or-nothing message calls.
"""

import copy
import logging
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from .errors import ChainError, InsufficientBalance, UnknownContract, CallRejected
from .keys import contract_address, normalize_address

logger = logging.getLogger(__name__)


def external(fn):
    """Mark a contract method as callable through Chain.call"""
    fn.external = True
    return fn


@dataclass(frozen=True)
class CallContext:
    """msg.sender / msg.value for one message call"""
    chain: 'Chain'
    sender: str
    value: int = 0

    @property
    def now(self) -> int:
        return self.chain.now


@dataclass
class ContractCall:
    """Method name plus arguments; the payload of a vault or module call"""
    method: str
    args: List[Any] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {'method': self.method, 'args': self.args}


@dataclass
class Event:
    name: str
    emitter: str
    args: Dict[str, Any]
    timestamp: int


class Contract:
    """Base class for simulated contracts. Mutable state lives in instance
    attributes; everything except the names in `_transient` is snapshotted
    at the start of each call and restored if the call reverts."""

    _transient = ('chain', 'address')

    def __init__(self, chain: 'Chain', address: str):
        self.chain = chain
        self.address = address

    def snapshot(self) -> dict:
        state = {k: v for k, v in vars(self).items() if k not in self._transient}
        return copy.deepcopy(state)

    def restore(self, state: dict):
        for key in [k for k in vars(self) if k not in self._transient]:
            delattr(self, key)
        vars(self).update(state)

    def emit(self, name: str, **args):
        self.chain.emit(self.address, name, args)


class Chain:
    """One ledger instance identified by its chain selector"""

    def __init__(self, selector: int, name: str = "", start_time: int = 1_700_000_000):
        self.selector = int(selector)
        self.name = name or f"chain-{selector}"
        self.now = start_time
        self.events: List[Event] = []
        self._balances: Dict[str, int] = {}
        self._contracts: Dict[str, Contract] = {}
        self._deploy_nonce = 0
        self._depth = 0

    # ── Clock ────────────────────────────────────────────────────────────────

    def advance(self, seconds: int) -> int:
        if seconds < 0:
            raise ValueError("Clock cannot move backwards")
        self.now += seconds
        return self.now

    # ── Contracts ────────────────────────────────────────────────────────────

    def deploy(self, factory, *args, label: str = "", **kwargs) -> Contract:
        """Instantiate a contract at a fresh deterministic address"""
        self._deploy_nonce += 1
        address = contract_address(self.selector, label or factory.__name__, self._deploy_nonce)
        contract = factory(self, address, *args, **kwargs)
        self._contracts[address] = contract
        logger.debug("Deployed %s at %s on %s", factory.__name__, address, self.name)
        return contract

    def contract(self, address: str) -> Contract:
        contract = self._contracts.get(address.lower() if isinstance(address, str) else address)
        if contract is None:
            raise UnknownContract(f"No contract at {address}")
        return contract

    def is_contract(self, address: str) -> bool:
        return isinstance(address, str) and address.lower() in self._contracts

    def find(self, kind: type) -> List[Contract]:
        """Deployed contracts of a given type, in deployment order"""
        return [c for c in self._contracts.values() if isinstance(c, kind)]

    # ── Native currency ──────────────────────────────────────────────────────

    def balance_of(self, address: str) -> int:
        return self._balances.get(address.lower(), 0)

    def mint_native(self, address: str, amount: int):
        """Faucet used by tests and demos"""
        address = normalize_address(address)
        self._balances[address] = self.balance_of(address) + amount

    def transfer_native(self, sender: str, recipient: str, amount: int):
        if amount < 0:
            raise ChainError("Negative transfer")
        sender, recipient = sender.lower(), normalize_address(recipient)
        balance = self.balance_of(sender)
        if balance < amount:
            raise InsufficientBalance(f"{sender} holds {balance}, needs {amount}")
        self._balances[sender] = balance - amount
        self._balances[recipient] = self.balance_of(recipient) + amount

    # ── Events ───────────────────────────────────────────────────────────────

    def emit(self, emitter: str, name: str, args: Dict[str, Any]):
        self.events.append(Event(name, emitter, dict(args), self.now))

    def events_named(self, name: str, emitter: Optional[str] = None) -> List[Event]:
        return [
            e for e in self.events
            if e.name == name and (emitter is None or e.emitter == emitter)
        ]

    # ── Calls ────────────────────────────────────────────────────────────────

    def _snapshot(self) -> dict:
        return {
            'balances': dict(self._balances),
            'events': len(self.events),
            'contracts': {addr: c.snapshot() for addr, c in self._contracts.items()},
        }

    def _restore(self, snapshot: dict):
        self._balances = snapshot['balances']
        del self.events[snapshot['events']:]
        for addr in list(self._contracts):
            if addr not in snapshot['contracts']:
                del self._contracts[addr]
        for addr, state in snapshot['contracts'].items():
            self._contracts[addr].restore(state)

    @contextmanager
    def atomic(self):
        """Either the whole block applies or none of it does"""
        snapshot = self._snapshot()
        self._depth += 1
        try:
            yield
        except BaseException:
            self._restore(snapshot)
            raise
        finally:
            self._depth -= 1

    def call(self, sender: str, target: str, method: Optional[str] = None, *args,
             value: int = 0, **kwargs) -> Any:
        """Message call: move `value` to `target`, then dispatch `method`"""
        with self.atomic():
            if value:
                self.transfer_native(sender, target, value)
            if method is None:
                return None

            contract = self.contract(target)
            fn = getattr(contract, method, None)
            if fn is None or not getattr(fn, 'external', False):
                raise CallRejected(f"{type(contract).__name__} has no external method {method!r}")
            return fn(CallContext(self, sender.lower(), value), *args, **kwargs)

    def transact(self, sender: str, target: str, method: Optional[str] = None, *args,
                 value: int = 0, **kwargs) -> Any:
        """Top-level transaction submitted by `sender`"""
        try:
            return self.call(sender, target, method, *args, value=value, **kwargs)
        except Exception as exc:
            logger.warning("Transaction %s.%s from %s reverted: %s", target, method, sender, exc)
            raise
