"""
MementoMori lifecycle controller.

One instance per ledger. Vaults commit a will fingerprint with save_will,
executors arm it with request_execution, and after the cooldown anyone can
execute it by resupplying the same payload. Local wills are disbursed from
the vault; remote wills are forwarded to the paired instance on their own
ledger.
"""

import logging
import os
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional

from .chain.bridge import BridgeMessage
from .chain.keys import normalize_address
from .chain.ledger import Chain, Contract, CallContext, external
from .disbursement import Disburser
from .errors import (
    ValueLessThanFee, NoExistingWill, ExecutionHashMismatch, CooldownNotElapsed,
    Unauthorized, WillInactive, InvalidAction, InvalidFee,
)
from .relay import CrossLedgerRelay, accept_forwarded
from .rules import WillRules, validate_will
from .store import WillRecordStore, WillRecord
from .will import Will

logger = logging.getLogger(__name__)

DEFAULT_FEE = 1_000_000


class Action(Enum):
    CREATE = "create"
    UPDATE = "update"
    CANCEL = "cancel"

    @classmethod
    def parse(cls, value) -> 'Action':
        """Accept an Action, its name/value in any case, or its ordinal"""
        if isinstance(value, cls):
            return value
        if isinstance(value, int) and not isinstance(value, bool):
            members = list(cls)
            if 0 <= value < len(members):
                return members[value]
        if isinstance(value, str):
            for member in cls:
                if value.lower() in (member.value, member.name.lower()):
                    return member
        raise InvalidAction(f"Unknown action {value!r}")


class WillStatus(Enum):
    NO_WILL = "NO_WILL"
    ACTIVE = "ACTIVE"
    PENDING = "PENDING"
    READY = "READY"


@dataclass
class InstanceConfig:
    """Deployment parameters of one instance"""
    fee: int = DEFAULT_FEE
    rules: WillRules = field(default_factory=WillRules.standard)
    fee_token: Optional[str] = None

    @classmethod
    def from_env(cls, fee_token: Optional[str] = None) -> 'InstanceConfig':
        """MEMENTO_FEE, MEMENTO_RULES, MEMENTO_MIN_COOLDOWN, MEMENTO_MAX_COOLDOWN"""
        if os.environ.get("MEMENTO_RULES", "standard") == "permissive":
            rules = WillRules.permissive()
        else:
            rules = WillRules.standard()
        if "MEMENTO_MIN_COOLDOWN" in os.environ:
            rules.min_cooldown = int(os.environ["MEMENTO_MIN_COOLDOWN"])
        if "MEMENTO_MAX_COOLDOWN" in os.environ:
            rules.max_cooldown = int(os.environ["MEMENTO_MAX_COOLDOWN"])
        return cls(
            fee=int(os.environ.get("MEMENTO_FEE", DEFAULT_FEE)),
            rules=rules,
            fee_token=fee_token,
        )


class MementoMori(Contract):
    """Will lifecycle state machine for the vaults of one ledger"""

    def __init__(self, chain, address, owner: str, config: InstanceConfig,
                 router: Optional[str] = None):
        super().__init__(chain, address)
        self._owner = normalize_address(owner)
        self._fee = config.fee
        self.rules = config.rules
        self.fee_token = config.fee_token.lower() if config.fee_token else None
        self.router = router.lower() if router else None
        self.store = WillRecordStore()
        self.trusted_remotes: Dict[int, str] = {}
        self.collected_fees = 0

    @classmethod
    def deploy(cls, chain: Chain, owner: str, config: Optional[InstanceConfig] = None,
               router: Optional[str] = None) -> 'MementoMori':
        return chain.deploy(cls, owner, config or InstanceConfig(), router, label="memento-mori")

    # ── Read-only ────────────────────────────────────────────────────────────

    def fee(self) -> int:
        return self._fee

    def owner(self) -> str:
        return self._owner

    def will_hashes(self, vault: str, chain_selector: Optional[int] = None,
                    origin_vault: Optional[str] = None) -> Optional[str]:
        """Stored fingerprint for `vault` (on this ledger unless told otherwise).

        Records of wills that disburse elsewhere belong to their origin vault.
        """
        if chain_selector is None:
            chain_selector = self.chain.selector
        return self.store.commitment(self.store.key(chain_selector, vault, origin_vault))

    def record_for(self, will: Will) -> Optional[WillRecord]:
        return self.store.get(self._key(will))

    def execution_status(self, will: Will) -> WillStatus:
        record = self.record_for(will)
        if record is None or record.commitment != will.commitment_hash():
            return WillStatus.NO_WILL
        if not record.pending:
            return WillStatus.ACTIVE
        ok, _ = self.rules.check_cooldown(record.request_time, self.chain.now, will.cooldown)
        return WillStatus.READY if ok else WillStatus.PENDING

    def time_remaining(self, will: Will) -> Optional[int]:
        """Seconds until `will` becomes executable; None if not pending"""
        record = self.record_for(will)
        if record is None or not record.pending:
            return None
        return max(0, record.request_time + will.cooldown - self.chain.now)

    # ── Helpers ──────────────────────────────────────────────────────────────

    def _key(self, will: Will):
        if will.is_remote_for(self.chain.selector):
            return self.store.key(will.chain_selector, will.vault, will.origin_vault)
        return self.store.key(will.chain_selector, will.vault)

    def _charge(self, ctx: CallContext, count: int):
        required = self._fee * count
        if ctx.value < required:
            raise ValueLessThanFee(f"Sent {ctx.value}, fee for {count} wills is {required}")
        self.collected_fees += ctx.value

    def _controller(self, will: Will) -> str:
        """The vault allowed to write this will's record on this ledger"""
        if not will.is_remote_for(self.chain.selector):
            return will.vault.lower()
        if int(will.origin_chain_selector) == self.chain.selector:
            return will.origin_vault.lower()
        raise Unauthorized(
            f"Will neither disburses nor originates on chain {self.chain.selector}"
        )

    def _may_trigger(self, will: Will, address: str) -> bool:
        address = address.lower()
        return will.is_executor(address) or address in (will.vault.lower(), will.origin_vault.lower())

    def _matching_record(self, will: Will) -> WillRecord:
        record = self.record_for(will)
        if record is None or record.commitment != will.commitment_hash():
            raise ExecutionHashMismatch(f"No matching commitment for vault {will.vault}")
        return record

    def _only_owner(self, ctx: CallContext):
        if ctx.sender != self._owner:
            raise Unauthorized("Only the owner can do this")

    # ── Lifecycle ────────────────────────────────────────────────────────────

    @external
    def save_will(self, ctx: CallContext, action, wills: List[Will]) -> List[Optional[str]]:
        """Create, update or cancel a batch of wills"""
        action = Action.parse(action)
        self._charge(ctx, len(wills))

        hashes = []
        for will in wills:
            validate_will(will, self.rules)
            controller = self._controller(will)
            if ctx.sender != controller:
                raise Unauthorized(f"{ctx.sender} does not control the will of vault {will.vault}")

            key = self._key(will)
            if action is Action.CANCEL:
                if not self.store.exists(key):
                    raise NoExistingWill(f"No will to cancel for vault {will.vault}")
                self.store.clear(key)
                self.emit("ExecutionCancelled", vault=will.vault.lower(), chain_selector=key[0])
                logger.info("Will for vault %s cancelled", will.vault)
                hashes.append(None)
                continue

            if action is Action.UPDATE and not self.store.exists(key):
                raise NoExistingWill(f"No will to update for vault {will.vault}")

            will_hash = will.commitment_hash()
            existed = self.store.commit(key, will_hash)
            event = "WillUpdated" if existed else "WillCreated"
            self.emit(event, vault=will.vault.lower(), chain_selector=key[0], will_hash=will_hash)
            logger.info("%s for vault %s: %s", event, will.vault, will_hash[:16])
            hashes.append(will_hash)

        return hashes

    @external
    def request_execution(self, ctx: CallContext, wills: List[Will]):
        """Arm (or re-arm) the cooldown clock of each will"""
        self._charge(ctx, len(wills))

        for will in wills:
            self._matching_record(will)
            if not self._may_trigger(will, ctx.sender):
                raise Unauthorized(f"{ctx.sender} is not an executor of vault {will.vault}")
            if not will.active:
                raise WillInactive(f"Will for vault {will.vault} is not active")

            self.store.arm(self._key(will), ctx.now, ctx.sender)
            self.emit("ExecutionRequested", vault=will.vault.lower(), requester=ctx.sender,
                      request_time=ctx.now, will_hash=will.commitment_hash())
            logger.info("Execution requested for vault %s by %s", will.vault, ctx.sender)

    @external
    def execute(self, ctx: CallContext, wills: List[Will]) -> List[dict]:
        """Disburse or forward every will whose cooldown has elapsed"""
        results = []
        for will in wills:
            record = self._matching_record(will)
            ok, reason = self.rules.check_cooldown(record.request_time, ctx.now, will.cooldown)
            if not ok:
                raise CooldownNotElapsed(f"Vault {will.vault}: {reason}")
            if not self._may_trigger(will, record.armed_by or ""):
                raise Unauthorized(f"Request for vault {will.vault} was armed by {record.armed_by}")

            will_hash = record.commitment
            self.store.clear(self._key(will))

            if will.is_remote_for(self.chain.selector):
                relay = CrossLedgerRelay(self.chain, self.address, self.router, self.fee_token)
                message_id = relay.forward(will, will_hash, self.trusted_remotes.get(int(will.chain_selector)))
                self.emit("ExecutionForwarded", vault=will.vault.lower(), will_hash=will_hash,
                          dest_selector=int(will.chain_selector), message_id=message_id)
                results.append({'vault': will.vault.lower(), 'will_hash': will_hash,
                                'forwarded': message_id, 'transfers': 0})
                continue

            issued = Disburser(self.chain, self.address).disburse(will)
            self.emit("ExecutionCompleted", vault=will.vault.lower(), will_hash=will_hash,
                      transfers=len(issued))
            logger.info("Will for vault %s executed with %d transfers", will.vault, len(issued))
            results.append({'vault': will.vault.lower(), 'will_hash': will_hash,
                            'forwarded': None, 'transfers': len(issued)})

        return results

    @external
    def ccip_receive(self, ctx: CallContext, message: BridgeMessage):
        """Arm a local will on behalf of the origin vault of a paired instance"""
        if self.router is None or ctx.sender != self.router:
            raise Unauthorized("Only the bridge router can deliver messages")

        forwarded = accept_forwarded(message, self.trusted_remotes)
        key = self.store.key(self.chain.selector, forwarded.vault)
        record = self.store.get(key)
        if record is None or record.commitment != forwarded.will_hash:
            raise ExecutionHashMismatch(f"Forwarded hash does not match vault {forwarded.vault}")

        self.store.arm(key, ctx.now, forwarded.origin_vault)
        self.emit("RemoteExecutionConfirmed", vault=forwarded.vault, origin_vault=forwarded.origin_vault,
                  source_selector=forwarded.source_selector, message_id=message.message_id)
        logger.info("Remote execution confirmed for vault %s from chain %s",
                    forwarded.vault, forwarded.source_selector)

    # ── Owner administration ────────────────────────────────────────────────

    @external
    def set_fee(self, ctx: CallContext, fee: int):
        self._only_owner(ctx)
        if fee < 0:
            raise InvalidFee(f"Fee cannot be negative, got {fee}")
        self._fee = fee
        self.emit("FeeChanged", fee=fee)

    @external
    def set_trusted_remote(self, ctx: CallContext, chain_selector: int, instance: str):
        self._only_owner(ctx)
        self.trusted_remotes[int(chain_selector)] = normalize_address(instance)
        self.emit("TrustedRemoteSet", chain_selector=int(chain_selector), instance=instance.lower())

    @external
    def withdraw_fees(self, ctx: CallContext, recipient: str) -> int:
        self._only_owner(ctx)
        amount = self.collected_fees
        self.collected_fees = 0
        self.chain.call(self.address, recipient, None, value=amount)
        self.emit("FeesWithdrawn", recipient=recipient.lower(), amount=amount)
        return amount
