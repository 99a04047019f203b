"""
Multisig vault holding the assets a will distributes.

Owners authorise the vault's own transactions with threshold secp256k1
signatures; enabled modules (a MementoMori instance) may move assets out
through `exec_from_module`.
"""

import hashlib
import json
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, List, Optional, Tuple

from .errors import ChainError, CallRejected, SignatureError
from .keys import AccountKey, address_from_public_key, normalize_address, verify_signature
from .ledger import Contract, CallContext, ContractCall, external

logger = logging.getLogger(__name__)


def _encode(obj):
    if hasattr(obj, 'to_dict'):
        return obj.to_dict()
    if isinstance(obj, Enum):
        return obj.value
    if isinstance(obj, (set, tuple)):
        return list(obj)
    raise TypeError(f"Cannot encode {type(obj).__name__}")


@dataclass
class VaultTransaction:
    """Transaction the vault executes as itself once enough owners sign"""
    target: str
    value: int
    call: Optional[ContractCall]
    nonce: int

    def digest(self, vault_address: str, chain_selector: int) -> bytes:
        hasher = hashlib.sha256()
        hasher.update(b"MULTISIG_VAULT_TX_V1")
        hasher.update(chain_selector.to_bytes(8, 'big'))
        hasher.update(bytes.fromhex(vault_address[2:]))
        body = {
            'target': self.target.lower(),
            'value': self.value,
            'call': self.call,
            'nonce': self.nonce,
        }
        hasher.update(json.dumps(body, sort_keys=True, default=_encode).encode())
        return hasher.digest()


class MultisigVault(Contract):
    """Threshold-signed vault with module support"""

    def __init__(self, chain, address, owners: List[str], threshold: int):
        super().__init__(chain, address)
        owners = [normalize_address(o) for o in owners]
        if len(set(owners)) != len(owners):
            raise ValueError("Duplicate vault owners")
        if not (1 <= threshold <= len(owners)):
            raise ValueError(f"Threshold must be between 1 and {len(owners)}, got {threshold}")
        self.owners = owners
        self.threshold = threshold
        self.nonce = 0
        self.modules: List[str] = []

    def build_transaction(self, target: str, method: Optional[str] = None, *args,
                          value: int = 0) -> VaultTransaction:
        """Prepare a transaction at the current nonce"""
        call = ContractCall(method, list(args)) if method else None
        return VaultTransaction(target.lower(), value, call, self.nonce)

    def sign_transaction(self, tx: VaultTransaction, key: AccountKey) -> Tuple[str, str]:
        """Owner signature as (public_key_hex, signature_hex)"""
        digest = tx.digest(self.address, self.chain.selector)
        return key.get_public_key_hex(), key.sign_message(digest)

    def _check_signatures(self, tx: VaultTransaction, signatures: List[Tuple[str, str]]):
        digest = tx.digest(self.address, self.chain.selector)
        approved = set()
        for pubkey_hex, signature_hex in signatures:
            signer = address_from_public_key(pubkey_hex)
            if signer not in self.owners:
                raise SignatureError(f"Signer {signer} is not a vault owner")
            if signer in approved:
                raise SignatureError(f"Duplicate signature from {signer}")
            if not verify_signature(digest, signature_hex, pubkey_hex):
                raise SignatureError(f"Invalid signature from {signer}")
            approved.add(signer)

        if len(approved) < self.threshold:
            raise SignatureError(f"Need {self.threshold} owner signatures, got {len(approved)}")

    @external
    def submit(self, ctx: CallContext, tx: VaultTransaction,
               signatures: List[Tuple[str, str]]) -> Any:
        """Execute a threshold-signed transaction as the vault"""
        if tx.nonce != self.nonce:
            raise SignatureError(f"Stale nonce {tx.nonce}, vault is at {self.nonce}")
        self._check_signatures(tx, signatures)
        self.nonce += 1

        method = tx.call.method if tx.call else None
        args = tx.call.args if tx.call else []
        result = self.chain.call(self.address, tx.target, method, *args, value=tx.value)
        self.emit("ExecutionSuccess", nonce=tx.nonce, target=tx.target, method=method)
        return result

    def _only_self(self, ctx: CallContext):
        if ctx.sender != self.address:
            raise CallRejected("Only callable by the vault itself")

    @external
    def enable_module(self, ctx: CallContext, module: str):
        self._only_self(ctx)
        module = normalize_address(module)
        if module not in self.modules:
            self.modules.append(module)
            self.emit("EnabledModule", module=module)

    @external
    def disable_module(self, ctx: CallContext, module: str):
        self._only_self(ctx)
        module = module.lower()
        if module in self.modules:
            self.modules.remove(module)
            self.emit("DisabledModule", module=module)

    def is_module_enabled(self, module: str) -> bool:
        return module.lower() in self.modules

    @external
    def exec_from_module(self, ctx: CallContext, target: str, value: int,
                         payload: Optional[ContractCall]) -> bool:
        """Move assets on behalf of an enabled module. A reverted inner
        call is reported as False with its state rolled back."""
        if ctx.sender not in self.modules:
            raise CallRejected(f"Module {ctx.sender} is not enabled on vault {self.address}")

        method = payload.method if payload else None
        args = payload.args if payload else []
        try:
            self.chain.call(self.address, target, method, *args, value=value)
        except ChainError as exc:
            logger.warning("Module call from vault %s to %s failed: %s", self.address, target, exc)
            self.emit("ExecutionFromModuleFailure", module=ctx.sender, target=target.lower())
            return False

        self.emit("ExecutionFromModuleSuccess", module=ctx.sender, target=target.lower())
        return True
