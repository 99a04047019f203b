"""
Cross-ledger relay: hands remote wills to the bridge instead of disbursing
locally, and decodes forwarded triggers arriving from paired instances.
"""

import json
import logging
from dataclasses import dataclass, asdict
from typing import Dict

from .chain.bridge import BridgeMessage
from .chain.errors import ChainError
from .chain.ledger import Chain
from .errors import RelayFailed, Unauthorized
from .will import Will

logger = logging.getLogger(__name__)


@dataclass
class ForwardedExecution:
    """Trigger sent to the paired instance on the will's ledger"""
    will_hash: str
    origin_vault: str
    vault: str
    source_selector: int

    def serialize(self) -> bytes:
        """Serialize trigger for the bridge payload"""
        return json.dumps(asdict(self), sort_keys=True).encode()

    @classmethod
    def deserialize(cls, data: bytes) -> 'ForwardedExecution':
        """Deserialize trigger from a bridge payload"""
        parsed = json.loads(data.decode())
        return cls(**parsed)


class CrossLedgerRelay:
    """Outbound side: one forwarding message per remote will"""

    def __init__(self, chain: Chain, instance_address: str, router_address: str, fee_token: str):
        self.chain = chain
        self.instance_address = instance_address
        self.router_address = router_address
        self.fee_token = fee_token

    def forward(self, will: Will, will_hash: str, trusted_remote: str) -> str:
        """Submit the trigger; any bridge failure is raised as RelayFailed"""
        if not self.router_address or not self.fee_token:
            raise RelayFailed("Instance has no bridge router or fee token configured")
        if not trusted_remote or trusted_remote.lower() != will.remote_instance.lower():
            raise RelayFailed(
                f"{will.remote_instance} is not the trusted instance for chain {will.chain_selector}"
            )

        payload = ForwardedExecution(
            will_hash=will_hash,
            origin_vault=will.origin_vault.lower(),
            vault=will.vault.lower(),
            source_selector=self.chain.selector,
        ).serialize()

        try:
            router = self.chain.contract(self.router_address)
            fee = router.get_fee(will.chain_selector, payload)
            self.chain.call(self.instance_address, self.fee_token, 'approve', self.router_address, fee)
            message_id = self.chain.call(
                self.instance_address, self.router_address, 'send_message',
                will.chain_selector, will.remote_instance, payload, self.fee_token,
            )
        except ChainError as exc:
            raise RelayFailed(f"Bridge rejected forward to chain {will.chain_selector}", str(exc))

        logger.info("Forwarded will %s for vault %s to chain %s as message %s",
                    will_hash[:16], will.vault, will.chain_selector, message_id[:16])
        return message_id


def accept_forwarded(message: BridgeMessage, trusted_remotes: Dict[int, str]) -> ForwardedExecution:
    """Inbound side: only triggers from the paired instance are honoured"""
    trusted = trusted_remotes.get(message.source_selector)
    if trusted is None or trusted.lower() != message.sender.lower():
        raise Unauthorized(
            f"Sender {message.sender} is not trusted on chain {message.source_selector}"
        )

    try:
        forwarded = ForwardedExecution.deserialize(message.payload)
    except (ValueError, TypeError, KeyError) as exc:
        raise Unauthorized("Malformed forwarded execution", str(exc))

    if forwarded.source_selector != message.source_selector:
        raise Unauthorized("Forwarded execution names a different source chain")
    return forwarded
