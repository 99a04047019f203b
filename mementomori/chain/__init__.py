"""
Host ledger simulation - chains, vaults, assets and the bridge network
"""

from .ledger import Chain, Contract, CallContext, ContractCall, Event, external
from .keys import AccountKey, ZERO_ADDRESS
from .assets import FungibleToken, NonFungibleToken, MultiToken
from .vault import MultisigVault, VaultTransaction
from .bridge import BridgeNetwork, BridgeRouter, BridgeMessage, MessageStatus
from .errors import ChainError

__all__ = [
    "Chain",
    "Contract",
    "CallContext",
    "ContractCall",
    "Event",
    "external",
    "AccountKey",
    "ZERO_ADDRESS",
    "FungibleToken",
    "NonFungibleToken",
    "MultiToken",
    "MultisigVault",
    "VaultTransaction",
    "BridgeNetwork",
    "BridgeRouter",
    "BridgeMessage",
    "MessageStatus",
    "ChainError",
]
