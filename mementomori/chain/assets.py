"""
Asset contracts held by vaults: fungible tokens, NFTs and multi-token
collections.
"""

from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

from .errors import InsufficientBalance, CallRejected
from .keys import normalize_address
from .ledger import Contract, CallContext, external


@dataclass
class TokenMetadata:
    """Token metadata"""
    name: str
    symbol: str
    decimals: int = 18


class FungibleToken(Contract):
    """Fungible token with balances and allowances"""

    def __init__(self, chain, address, name: str, symbol: str, decimals: int = 18):
        super().__init__(chain, address)
        self.metadata = TokenMetadata(name, symbol, decimals)
        self.total_supply = 0
        self._balances: Dict[str, int] = {}
        self._allowances: Dict[str, Dict[str, int]] = {}  # owner -> spender -> amount

    def mint(self, to: str, amount: int):
        """Create new tokens (test faucet)"""
        to = normalize_address(to)
        self._balances[to] = self.balance_of(to) + amount
        self.total_supply += amount
        self.emit("Transfer", sender=None, recipient=to, amount=amount)

    def balance_of(self, owner: str) -> int:
        """Get token balance for address"""
        return self._balances.get(owner.lower(), 0)

    def allowance(self, owner: str, spender: str) -> int:
        """Get approved allowance"""
        return self._allowances.get(owner.lower(), {}).get(spender.lower(), 0)

    def _move(self, from_addr: str, to_addr: str, amount: int):
        if amount < 0:
            raise CallRejected("Negative amount")
        to_addr = normalize_address(to_addr)
        from_balance = self.balance_of(from_addr)
        if from_balance < amount:
            raise InsufficientBalance(
                f"{self.metadata.symbol}: {from_addr} holds {from_balance}, needs {amount}"
            )
        self._balances[from_addr] = from_balance - amount
        self._balances[to_addr] = self.balance_of(to_addr) + amount
        self.emit("Transfer", sender=from_addr, recipient=to_addr, amount=amount)

    @external
    def transfer(self, ctx: CallContext, to: str, amount: int) -> bool:
        """Transfer tokens from the caller"""
        self._move(ctx.sender, to, amount)
        return True

    @external
    def approve(self, ctx: CallContext, spender: str, amount: int) -> bool:
        """Approve spender to transfer tokens on behalf of the caller"""
        self._allowances.setdefault(ctx.sender, {})[spender.lower()] = amount
        self.emit("Approval", owner=ctx.sender, spender=spender.lower(), amount=amount)
        return True

    @external
    def transfer_from(self, ctx: CallContext, from_addr: str, to: str, amount: int) -> bool:
        """Transfer tokens using allowance"""
        from_addr = from_addr.lower()
        allowed = self.allowance(from_addr, ctx.sender)
        if allowed < amount:
            raise CallRejected(f"Allowance {allowed} below {amount}")
        self._move(from_addr, to, amount)
        self._allowances[from_addr][ctx.sender] = allowed - amount
        return True


class NonFungibleToken(Contract):
    """Non-fungible token collection; each token id has one owner"""

    def __init__(self, chain, address, name: str, symbol: str):
        super().__init__(chain, address)
        self.metadata = TokenMetadata(name, symbol, 0)
        self._owners: Dict[int, str] = {}
        self._next_id = 0

    def mint(self, to: str, token_id: Optional[int] = None) -> int:
        """Mint the next (or a given) token id to `to`"""
        if token_id is None:
            token_id = self._next_id
        if token_id in self._owners:
            raise CallRejected(f"Token {token_id} already minted")
        self._owners[token_id] = normalize_address(to)
        self._next_id = max(self._next_id, token_id + 1)
        return token_id

    def owner_of(self, token_id: int) -> Optional[str]:
        return self._owners.get(token_id)

    def balance_of(self, owner: str) -> int:
        owner = owner.lower()
        return sum(1 for o in self._owners.values() if o == owner)

    def tokens_of(self, owner: str) -> List[int]:
        owner = owner.lower()
        return sorted(t for t, o in self._owners.items() if o == owner)

    @external
    def transfer_from(self, ctx: CallContext, from_addr: str, to: str, token_id: int) -> bool:
        from_addr = from_addr.lower()
        if ctx.sender != from_addr:
            raise CallRejected("Caller is not token owner")
        if self._owners.get(token_id) != from_addr:
            raise CallRejected(f"{from_addr} does not own token {token_id}")
        self._owners[token_id] = normalize_address(to)
        self.emit("Transfer", sender=from_addr, recipient=to.lower(), token_id=token_id)
        return True


class MultiToken(Contract):
    """Multi-token collection; balances per (token id, owner)"""

    def __init__(self, chain, address, name: str):
        super().__init__(chain, address)
        self.name = name
        self._balances: Dict[Tuple[int, str], int] = {}

    def mint(self, to: str, token_id: int, amount: int):
        key = (token_id, normalize_address(to))
        self._balances[key] = self._balances.get(key, 0) + amount

    def balance_of(self, owner: str, token_id: int) -> int:
        return self._balances.get((token_id, owner.lower()), 0)

    @external
    def safe_transfer_from(self, ctx: CallContext, from_addr: str, to: str,
                           token_id: int, amount: int) -> bool:
        from_addr = from_addr.lower()
        if ctx.sender != from_addr:
            raise CallRejected("Caller is not owner")
        balance = self.balance_of(from_addr, token_id)
        if balance < amount:
            raise InsufficientBalance(
                f"{self.name}#{token_id}: {from_addr} holds {balance}, needs {amount}"
            )
        to = normalize_address(to)
        self._balances[(token_id, from_addr)] = balance - amount
        self._balances[(token_id, to)] = self.balance_of(to, token_id) + amount
        self.emit("TransferSingle", sender=from_addr, recipient=to, token_id=token_id, amount=amount)
        return True
