import hashlib
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import ClassVar, List, Optional

from .chain.keys import ZERO_ADDRESS

WILL_HASH_DOMAIN = b"MEMENTO_MORI_WILL_V1"


class AssetClass(Enum):
    NATIVE = "native"
    TOKEN = "token"
    NFT = "nft"
    MULTI_TOKEN = "multi_token"


@dataclass
class NativeAllocation:
    """Split of the vault's native currency"""
    beneficiaries: List[str] = field(default_factory=list)
    percentages: List[int] = field(default_factory=list)

    asset_class: ClassVar[AssetClass] = AssetClass.NATIVE

    def is_empty(self) -> bool:
        return not self.beneficiaries

    def to_dict(self) -> dict:
        return {'beneficiaries': list(self.beneficiaries), 'percentages': list(self.percentages)}


@dataclass
class TokenAllocation:
    """Split of one fungible token balance"""
    asset: str
    beneficiaries: List[str] = field(default_factory=list)
    percentages: List[int] = field(default_factory=list)

    asset_class: ClassVar[AssetClass] = AssetClass.TOKEN

    def is_empty(self) -> bool:
        return not self.beneficiaries

    def to_dict(self) -> dict:
        return {
            'contractAddress': self.asset,
            'beneficiaries': list(self.beneficiaries),
            'percentages': list(self.percentages),
        }


@dataclass
class NFTAllocation:
    """Whole NFTs; token_ids[i] goes to beneficiaries[i]"""
    asset: str
    token_ids: List[int] = field(default_factory=list)
    beneficiaries: List[str] = field(default_factory=list)

    asset_class: ClassVar[AssetClass] = AssetClass.NFT

    def is_empty(self) -> bool:
        return not self.beneficiaries and not self.token_ids

    def to_dict(self) -> dict:
        return {
            'contractAddress': self.asset,
            'tokenIds': list(self.token_ids),
            'beneficiaries': list(self.beneficiaries),
        }


@dataclass
class MultiTokenAllocation:
    """Split of one token id inside a multi-token collection"""
    asset: str
    token_id: int = 0
    beneficiaries: List[str] = field(default_factory=list)
    percentages: List[int] = field(default_factory=list)

    asset_class: ClassVar[AssetClass] = AssetClass.MULTI_TOKEN

    def is_empty(self) -> bool:
        return not self.beneficiaries

    def to_dict(self) -> dict:
        return {
            'contractAddress': self.asset,
            'tokenId': self.token_id,
            'beneficiaries': list(self.beneficiaries),
            'percentages': list(self.percentages),
        }


def _put_int(hasher, value: int):
    data = str(int(value)).encode()
    hasher.update(len(data).to_bytes(4, 'big'))
    hasher.update(data)


def _put_str(hasher, value: str):
    data = str(value).lower().encode()
    hasher.update(len(data).to_bytes(4, 'big'))
    hasher.update(data)


def _put_split(hasher, beneficiaries: List[str], percentages: List[int]):
    _put_int(hasher, len(beneficiaries))
    for beneficiary in beneficiaries:
        _put_str(hasher, beneficiary)
    _put_int(hasher, len(percentages))
    for pct in percentages:
        _put_int(hasher, pct)


@dataclass
class Will:
    """Distribution rules for one vault.

    Only `commitment_hash()` is ever stored; callers resupply the full will
    on every call. `request_time` is informational and excluded from the
    hash since the store owns timing.
    """
    vault: str
    chain_selector: int
    native: NativeAllocation = field(default_factory=NativeAllocation)
    tokens: List[TokenAllocation] = field(default_factory=list)
    nfts: List[NFTAllocation] = field(default_factory=list)
    multi_tokens: List[MultiTokenAllocation] = field(default_factory=list)
    executors: List[str] = field(default_factory=list)
    cooldown: int = 0
    active: bool = True
    request_time: int = 0
    remote_instance: str = ZERO_ADDRESS
    origin_vault: Optional[str] = None
    origin_chain_selector: Optional[int] = None

    def __post_init__(self):
        if self.origin_vault is None:
            self.origin_vault = self.vault
        if self.origin_chain_selector is None:
            self.origin_chain_selector = self.chain_selector

    def allocations(self) -> list:
        """All allocations in validation/disbursement order"""
        return [self.native, *self.tokens, *self.nfts, *self.multi_tokens]

    def is_remote_for(self, local_selector: int) -> bool:
        return int(self.chain_selector) != int(local_selector)

    def is_executor(self, address: str) -> bool:
        address = address.lower()
        return any(e.lower() == address for e in self.executors)

    def commitment_hash(self) -> str:
        """Deterministic fingerprint binding every field but request_time"""
        hasher = hashlib.sha256()
        hasher.update(WILL_HASH_DOMAIN)

        _put_int(hasher, self.origin_chain_selector)
        _put_int(hasher, self.chain_selector)
        _put_str(hasher, self.vault)
        _put_str(hasher, self.origin_vault)
        _put_str(hasher, self.remote_instance)
        hasher.update(b"\x01" if self.active else b"\x00")
        _put_int(hasher, self.cooldown)

        hasher.update(b"N")
        _put_split(hasher, self.native.beneficiaries, self.native.percentages)

        hasher.update(b"T")
        _put_int(hasher, len(self.tokens))
        for token in self.tokens:
            _put_str(hasher, token.asset)
            _put_split(hasher, token.beneficiaries, token.percentages)

        hasher.update(b"F")
        _put_int(hasher, len(self.nfts))
        for nft in self.nfts:
            _put_str(hasher, nft.asset)
            _put_int(hasher, len(nft.token_ids))
            for token_id in nft.token_ids:
                _put_int(hasher, token_id)
            _put_int(hasher, len(nft.beneficiaries))
            for beneficiary in nft.beneficiaries:
                _put_str(hasher, beneficiary)

        hasher.update(b"M")
        _put_int(hasher, len(self.multi_tokens))
        for multi in self.multi_tokens:
            _put_str(hasher, multi.asset)
            _put_int(hasher, multi.token_id)
            _put_split(hasher, multi.beneficiaries, multi.percentages)

        # executors are a set
        executors = sorted({e.lower() for e in self.executors})
        hasher.update(b"E")
        _put_int(hasher, len(executors))
        for executor in executors:
            _put_str(hasher, executor)

        return hasher.hexdigest()

    def replace(self, **changes) -> 'Will':
        return replace(self, **changes)

    def to_dict(self) -> dict:
        """Serialize will to the wire dictionary"""
        return {
            'isActive': self.active,
            'requestTime': self.request_time,
            'cooldown': self.cooldown,
            'native': self.native.to_dict(),
            'tokens': [t.to_dict() for t in self.tokens],
            'nfts': [n.to_dict() for n in self.nfts],
            'erc1155s': [m.to_dict() for m in self.multi_tokens],
            'executors': list(self.executors),
            'chainSelector': self.chain_selector,
            'safe': self.vault,
            'xChainAddress': self.remote_instance,
            'originSafe': self.origin_vault,
            'originChainSelector': self.origin_chain_selector,
        }

    @classmethod
    def from_dict(cls, data: dict) -> 'Will':
        """Deserialize will from the wire dictionary"""
        native = data.get('native') or {}
        origin_selector = data.get('originChainSelector')
        return cls(
            vault=data['safe'],
            chain_selector=int(data['chainSelector']),
            native=NativeAllocation(list(native.get('beneficiaries', [])),
                                    list(native.get('percentages', []))),
            tokens=[
                TokenAllocation(t['contractAddress'], list(t['beneficiaries']), list(t['percentages']))
                for t in data.get('tokens', [])
            ],
            nfts=[
                NFTAllocation(n['contractAddress'], [int(i) for i in n['tokenIds']], list(n['beneficiaries']))
                for n in data.get('nfts', [])
            ],
            multi_tokens=[
                MultiTokenAllocation(m['contractAddress'], int(m['tokenId']),
                                     list(m['beneficiaries']), list(m['percentages']))
                for m in data.get('erc1155s', [])
            ],
            executors=list(data.get('executors', [])),
            cooldown=int(data.get('cooldown', 0)),
            active=bool(data.get('isActive', True)),
            request_time=int(data.get('requestTime', 0)),
            remote_instance=data.get('xChainAddress', ZERO_ADDRESS),
            origin_vault=data.get('originSafe'),
            origin_chain_selector=int(origin_selector) if origin_selector is not None else None,
        )
