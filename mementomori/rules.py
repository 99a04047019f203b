from dataclasses import dataclass
from typing import List, Tuple, Type

from .chain.keys import ZERO_ADDRESS, is_address
from .errors import (
    MementoMoriError, InvalidNative, InvalidTokens, InvalidNfts, InvalidErc1155,
    InvalidExecutors, InvalidCooldown,
)
from .will import Will

U32_MAX = 2 ** 32 - 1
HOUR = 3600
DAY = 24 * HOUR


@dataclass
class WillRules:
    """Bounds a will must respect before it is committed"""

    min_cooldown: int
    max_cooldown: int
    max_beneficiaries: int

    @classmethod
    def standard(cls) -> 'WillRules':
        """Production bounds"""
        return cls(
            min_cooldown=HOUR,
            max_cooldown=365 * DAY,
            max_beneficiaries=64,
        )

    @classmethod
    def permissive(cls) -> 'WillRules':
        """Any u32 cooldown; used by tests and demos"""
        return cls(
            min_cooldown=0,
            max_cooldown=U32_MAX,
            max_beneficiaries=256,
        )

    def check_split(self, beneficiaries: List[str], percentages: List[int]) -> Tuple[bool, str]:
        """Validate one percentage split (empty means no allocation)"""
        if not beneficiaries and not percentages:
            return True, "Empty allocation"

        if len(beneficiaries) != len(percentages):
            return False, f"{len(beneficiaries)} beneficiaries but {len(percentages)} percentages"

        if len(beneficiaries) > self.max_beneficiaries:
            return False, f"At most {self.max_beneficiaries} beneficiaries, got {len(beneficiaries)}"

        for beneficiary in beneficiaries:
            if not is_address(beneficiary) or beneficiary.lower() == ZERO_ADDRESS:
                return False, f"Bad beneficiary address {beneficiary!r}"

        for pct in percentages:
            if not isinstance(pct, int) or isinstance(pct, bool) or not (0 <= pct <= 255):
                return False, f"Percentage {pct!r} is not a u8"

        total = sum(percentages)
        if total != 100:
            return False, f"Percentages must sum to 100, got {total}"

        return True, "Valid split"

    def check_cooldown(self, request_time: int, now: int, cooldown: int) -> Tuple[bool, str]:
        """Check that a pending request has waited out its cooldown"""
        if request_time == 0:
            return False, "Execution was never requested"

        elapsed = now - request_time
        if elapsed < cooldown:
            return False, f"Cooldown: {cooldown - elapsed} seconds remaining"

        return True, "Cooldown elapsed"


def _require(ok_reason: Tuple[bool, str], error: Type[MementoMoriError], where: str):
    ok, reason = ok_reason
    if not ok:
        raise error(f"{where}: {reason}")


def _check_asset(asset: str, error: Type[MementoMoriError], where: str):
    if not is_address(asset) or asset.lower() == ZERO_ADDRESS:
        raise error(f"{where}: bad contract address {asset!r}")


def validate_will(will: Will, rules: WillRules):
    """Raise the specific error for the first structural problem in `will`.

    Order: native, tokens, NFTs, multi-tokens, executors, cooldown.
    """
    _require(rules.check_split(will.native.beneficiaries, will.native.percentages),
             InvalidNative, "native")

    for i, token in enumerate(will.tokens):
        where = f"tokens[{i}]"
        _require(rules.check_split(token.beneficiaries, token.percentages), InvalidTokens, where)
        if not token.is_empty():
            _check_asset(token.asset, InvalidTokens, where)

    for i, nft in enumerate(will.nfts):
        where = f"nfts[{i}]"
        if len(nft.token_ids) != len(nft.beneficiaries):
            raise InvalidNfts(
                f"{where}: {len(nft.token_ids)} token ids but {len(nft.beneficiaries)} beneficiaries"
            )
        if nft.is_empty():
            continue
        _check_asset(nft.asset, InvalidNfts, where)
        if len(set(nft.token_ids)) != len(nft.token_ids):
            raise InvalidNfts(f"{where}: duplicate token ids")
        for token_id in nft.token_ids:
            if not isinstance(token_id, int) or isinstance(token_id, bool) or token_id < 0:
                raise InvalidNfts(f"{where}: bad token id {token_id!r}")
        for beneficiary in nft.beneficiaries:
            if not is_address(beneficiary) or beneficiary.lower() == ZERO_ADDRESS:
                raise InvalidNfts(f"{where}: bad beneficiary address {beneficiary!r}")

    for i, multi in enumerate(will.multi_tokens):
        where = f"erc1155s[{i}]"
        _require(rules.check_split(multi.beneficiaries, multi.percentages), InvalidErc1155, where)
        if not multi.is_empty():
            _check_asset(multi.asset, InvalidErc1155, where)
            if not isinstance(multi.token_id, int) or isinstance(multi.token_id, bool) or multi.token_id < 0:
                raise InvalidErc1155(f"{where}: bad token id {multi.token_id!r}")

    if will.active and not will.executors:
        raise InvalidExecutors("An active will needs at least one executor")
    for executor in will.executors:
        if not is_address(executor):
            raise InvalidExecutors(f"Bad executor address {executor!r}")

    if not isinstance(will.cooldown, int) or not (rules.min_cooldown <= will.cooldown <= rules.max_cooldown):
        raise InvalidCooldown(
            f"Cooldown {will.cooldown} outside [{rules.min_cooldown}, {rules.max_cooldown}]"
        )
