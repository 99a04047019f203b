"""
Account key utilities for the simulated ledger
"""

import hashlib
from typing import Tuple
from ecdsa import SigningKey, SECP256k1, VerifyingKey, BadSignatureError
from ecdsa.errors import MalformedPointError

ZERO_ADDRESS = "0x" + "00" * 20


class AccountKey:
    """secp256k1 key pair owning an externally controlled account"""

    def __init__(self, private_key: bytes = None):
        if private_key:
            self.private_key = SigningKey.from_string(private_key, curve=SECP256k1)
        else:
            self.private_key = SigningKey.generate(curve=SECP256k1)

        self.public_key = self.private_key.get_verifying_key()

    def get_public_key_hex(self) -> str:
        """Compressed public key in hex format"""
        return self.public_key.to_string("compressed").hex()

    @property
    def address(self) -> str:
        return address_from_public_key(self.get_public_key_hex())

    def sign_message(self, message: bytes) -> str:
        """Sign message and return signature in hex"""
        signature = self.private_key.sign_deterministic(message, hashfunc=hashlib.sha256)
        return signature.hex()

    @staticmethod
    def generate_key_pair() -> Tuple[str, str]:
        """Generate new key pair and return (private_key_hex, public_key_hex)"""
        key = AccountKey()
        private_hex = key.private_key.to_string().hex()
        public_hex = key.get_public_key_hex()
        return private_hex, public_hex


def address_from_public_key(pubkey_hex: str) -> str:
    """Last 20 bytes of SHA256 over the uncompressed point"""
    vk = VerifyingKey.from_string(bytes.fromhex(pubkey_hex), curve=SECP256k1)
    raw = vk.to_string("uncompressed")
    return "0x" + hashlib.sha256(raw).digest()[-20:].hex()


def verify_signature(message: bytes, signature_hex: str, pubkey_hex: str) -> bool:
    """Verify signature against message and public key"""
    try:
        vk = VerifyingKey.from_string(bytes.fromhex(pubkey_hex), curve=SECP256k1)
        return vk.verify(bytes.fromhex(signature_hex), message, hashfunc=hashlib.sha256)
    except (BadSignatureError, MalformedPointError, ValueError):
        return False


def contract_address(*parts) -> str:
    """Deterministic address for a deployed contract"""
    hasher = hashlib.sha256()
    hasher.update(b"CONTRACT_ADDRESS_V1")
    for part in parts:
        hasher.update(str(part).encode())
        hasher.update(b"\x00")
    return "0x" + hasher.digest()[-20:].hex()


def is_address(value) -> bool:
    if not isinstance(value, str) or len(value) != 42 or not value.startswith("0x"):
        return False
    try:
        bytes.fromhex(value[2:])
    except ValueError:
        return False
    return True


def normalize_address(value: str) -> str:
    """Lowercase an address; raises ValueError if malformed"""
    if not is_address(value):
        raise ValueError(f"Malformed address: {value!r}")
    return value.lower()
