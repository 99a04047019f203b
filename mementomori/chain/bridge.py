"""
Cross-ledger messaging network.

Each attached chain gets a BridgeRouter contract. Outbound messages are
charged in a fee token, attested with the source router's Ed25519 key and
queued; `BridgeNetwork.deliver_pending` later verifies and routes them to the
receiver on the destination chain.
"""

import hashlib
import json
import logging
from dataclasses import dataclass, asdict
from enum import Enum
from typing import Dict, List, Optional, Tuple

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PrivateKey, Ed25519PublicKey

from .assets import FungibleToken
from .errors import BridgeError, UnknownContract
from .ledger import Chain, Contract, CallContext, external

logger = logging.getLogger(__name__)


class MessageStatus(Enum):
    PENDING = "pending"
    SUCCESS = "success"
    FAILED = "failed"


@dataclass
class BridgeMessage:
    """Message in transit between two routers"""
    message_id: str
    source_selector: int
    dest_selector: int
    sender: str
    receiver: str
    data: str  # hex
    fee_token: str
    fee_paid: int
    attestation: str = ""

    def signing_bytes(self) -> bytes:
        body = asdict(self)
        body.pop('attestation')
        return b"BRIDGE_MESSAGE_V1" + json.dumps(body, sort_keys=True).encode()

    @property
    def payload(self) -> bytes:
        return bytes.fromhex(self.data)

    def serialize(self) -> bytes:
        """Serialize message for transmission"""
        return json.dumps(asdict(self)).encode()

    @classmethod
    def deserialize(cls, data: bytes) -> 'BridgeMessage':
        """Deserialize message from bytes"""
        return cls(**json.loads(data.decode()))


class BridgeRouter(Contract):
    """Per-chain endpoint of the bridge network"""

    _transient = Contract._transient + ('network', '_signing_key')

    def __init__(self, chain, address, network: 'BridgeNetwork', base_fee: int, fee_per_byte: int):
        super().__init__(chain, address)
        self.network = network
        self._signing_key = Ed25519PrivateKey.generate()
        self.base_fee = base_fee
        self.fee_per_byte = fee_per_byte
        self.sequence = 0
        self.outbox: List[BridgeMessage] = []

    @property
    def public_key(self) -> Ed25519PublicKey:
        return self._signing_key.public_key()

    def get_fee(self, dest_selector: int, payload: bytes) -> int:
        """Fee quote in fee-token units"""
        if not self.network.has_chain(dest_selector):
            raise BridgeError(f"Unsupported destination chain {dest_selector}")
        return self.base_fee + self.fee_per_byte * len(payload)

    @external
    def send_message(self, ctx: CallContext, dest_selector: int, receiver: str,
                     payload: bytes, fee_token: str) -> str:
        """Queue a message; the fee is pulled from the caller's allowance"""
        if dest_selector == self.chain.selector:
            raise BridgeError("Destination is the source chain")
        fee = self.get_fee(dest_selector, payload)

        try:
            token = self.chain.contract(fee_token)
        except UnknownContract:
            raise BridgeError(f"Unknown fee token {fee_token}")
        if not isinstance(token, FungibleToken):
            raise BridgeError(f"{fee_token} is not a fungible token")
        self.chain.call(self.address, fee_token, 'transfer_from', ctx.sender, self.address, fee)

        self.sequence += 1
        hasher = hashlib.sha256()
        hasher.update(b"BRIDGE_MESSAGE_ID_V1")
        hasher.update(self.chain.selector.to_bytes(8, 'big'))
        hasher.update(self.sequence.to_bytes(8, 'big'))
        hasher.update(ctx.sender.encode())
        hasher.update(payload)
        message = BridgeMessage(
            message_id=hasher.hexdigest(),
            source_selector=self.chain.selector,
            dest_selector=dest_selector,
            sender=ctx.sender,
            receiver=receiver.lower(),
            data=payload.hex(),
            fee_token=fee_token.lower(),
            fee_paid=fee,
        )
        message.attestation = self._signing_key.sign(message.signing_bytes()).hex()
        self.outbox.append(message)

        self.emit("MessageSent", message_id=message.message_id, dest_selector=dest_selector,
                  receiver=message.receiver, fee=fee)
        logger.info("Bridge message %s queued %s -> %s", message.message_id[:16],
                    self.chain.selector, dest_selector)
        return message.message_id

    def route(self, message: BridgeMessage):
        """Deliver a message on this (destination) chain"""
        if message.dest_selector != self.chain.selector:
            raise BridgeError("Message routed to the wrong chain")
        source = self.network.router(message.source_selector)
        try:
            source.public_key.verify(bytes.fromhex(message.attestation), message.signing_bytes())
        except (InvalidSignature, ValueError):
            raise BridgeError(f"Bad attestation on message {message.message_id}")

        self.chain.call(self.address, message.receiver, 'ccip_receive', message)
        self.emit("MessageExecuted", message_id=message.message_id,
                  source_selector=message.source_selector)


class BridgeNetwork:
    """Links routers on several chains and delivers queued messages"""

    def __init__(self, base_fee: int = 10_000, fee_per_byte: int = 10):
        self.base_fee = base_fee
        self.fee_per_byte = fee_per_byte
        self._routers: Dict[int, BridgeRouter] = {}
        self.statuses: Dict[str, MessageStatus] = {}
        self.failures: Dict[str, str] = {}
        self._failed: Dict[str, BridgeMessage] = {}

    def attach(self, chain: Chain) -> BridgeRouter:
        if chain.selector in self._routers:
            raise BridgeError(f"Chain {chain.selector} already attached")
        router = chain.deploy(BridgeRouter, self, self.base_fee, self.fee_per_byte, label="bridge-router")
        self._routers[chain.selector] = router
        return router

    def has_chain(self, selector: int) -> bool:
        return selector in self._routers

    def router(self, selector: int) -> BridgeRouter:
        if selector not in self._routers:
            raise BridgeError(f"Chain {selector} is not attached to the bridge")
        return self._routers[selector]

    def chains(self) -> List[Chain]:
        return [r.chain for r in self._routers.values()]

    def pending(self) -> List[BridgeMessage]:
        return [m for r in self._routers.values() for m in r.outbox]

    def _deliver(self, message: BridgeMessage) -> MessageStatus:
        dest = self.router(message.dest_selector)
        try:
            with dest.chain.atomic():
                dest.route(message)
        except Exception as exc:
            reason = getattr(exc, 'kind', type(exc).__name__)
            logger.warning("Bridge message %s failed on %s: %s", message.message_id[:16],
                           message.dest_selector, exc)
            self.statuses[message.message_id] = MessageStatus.FAILED
            self.failures[message.message_id] = reason
            self._failed[message.message_id] = message
            dest.emit("MessageFailed", message_id=message.message_id, reason=reason)
            return MessageStatus.FAILED

        logger.info("Bridge message %s delivered on %s", message.message_id[:16], message.dest_selector)
        self.statuses[message.message_id] = MessageStatus.SUCCESS
        self.failures.pop(message.message_id, None)
        self._failed.pop(message.message_id, None)
        return MessageStatus.SUCCESS

    def deliver_pending(self) -> List[Tuple[str, MessageStatus]]:
        """Deliver every queued message; failures are recorded, not retried"""
        results = []
        for router in list(self._routers.values()):
            outbox, router.outbox = router.outbox, []
            for message in outbox:
                results.append((message.message_id, self._deliver(message)))
        return results

    def manually_execute(self, message_id: str) -> MessageStatus:
        """Retry a failed delivery, e.g. after the receiver was fixed"""
        message = self._failed.get(message_id)
        if message is None:
            raise BridgeError(f"No failed message {message_id}")
        return self._deliver(message)

    def status(self, message_id: str) -> Optional[MessageStatus]:
        if any(m.message_id == message_id for m in self.pending()):
            return MessageStatus.PENDING
        return self.statuses.get(message_id)
