"""
Shared deployment helpers for the test suite
"""

from dataclasses import dataclass
from typing import List, Optional

from mementomori.chain.assets import FungibleToken, NonFungibleToken, MultiToken
from mementomori.chain.bridge import BridgeNetwork
from mementomori.chain.keys import AccountKey
from mementomori.chain.ledger import Chain
from mementomori.chain.vault import MultisigVault
from mementomori.lifecycle import MementoMori, InstanceConfig
from mementomori.rules import WillRules
from mementomori.will import Will, NativeAllocation

FEE = 1_000


def addr(n: int) -> str:
    """Deterministic externally owned address"""
    return "0x" + format(n, '040x')


@dataclass
class VaultHandle:
    vault: MultisigVault
    keys: List[AccountKey]

    @property
    def address(self) -> str:
        return self.vault.address

    def run(self, target: str, method: Optional[str] = None, *args, value: int = 0):
        """Threshold-sign and submit a transaction as the vault"""
        tx = self.vault.build_transaction(target, method, *args, value=value)
        signatures = [self.vault.sign_transaction(tx, k) for k in self.keys[:self.vault.threshold]]
        return self.vault.chain.transact(self.keys[0].address, self.address, 'submit', tx, signatures)


class Deployment:
    """One chain with a fee token and a MementoMori instance"""

    def __init__(self, selector: int, network: Optional[BridgeNetwork] = None,
                 fee: int = FEE, rules: Optional[WillRules] = None):
        self.chain = Chain(selector)
        self.network = network
        self.router = network.attach(self.chain) if network else None
        self.fee_token = self.chain.deploy(FungibleToken, "Bridge Fee", "LINK", label="fee-token")
        self.owner = AccountKey()
        config = InstanceConfig(fee=fee, rules=rules or WillRules.permissive(),
                                fee_token=self.fee_token.address)
        self.instance = MementoMori.deploy(
            self.chain, self.owner.address, config,
            self.router.address if self.router else None,
        )

    @property
    def selector(self) -> int:
        return self.chain.selector

    def new_vault(self, owners: int = 2, threshold: int = 2, enable_module: bool = True) -> VaultHandle:
        keys = [AccountKey() for _ in range(owners)]
        vault = self.chain.deploy(MultisigVault, [k.address for k in keys], threshold)
        handle = VaultHandle(vault, keys)
        if enable_module:
            handle.run(vault.address, 'enable_module', self.instance.address)
        return handle

    def new_token(self, symbol: str = "TKN") -> FungibleToken:
        return self.chain.deploy(FungibleToken, f"{symbol} Token", symbol)

    def new_nft(self, symbol: str = "NFT") -> NonFungibleToken:
        return self.chain.deploy(NonFungibleToken, f"{symbol} Collection", symbol)

    def new_multi_token(self, name: str = "Items") -> MultiToken:
        return self.chain.deploy(MultiToken, name)

    def funded(self, address: str, amount: int = 10 * FEE) -> str:
        self.chain.mint_native(address, amount)
        return address

    def save(self, handle: VaultHandle, action, *wills: Will, value: Optional[int] = None):
        fee = self.instance.fee() * len(wills) if value is None else value
        self.chain.mint_native(handle.address, fee)
        return handle.run(self.instance.address, 'save_will', action, list(wills), value=fee)

    def request(self, caller: str, *wills: Will, value: Optional[int] = None):
        fee = self.instance.fee() * len(wills) if value is None else value
        self.chain.mint_native(caller, fee)
        return self.chain.transact(caller, self.instance.address, 'request_execution', list(wills), value=fee)

    def execute(self, caller: str, *wills: Will):
        return self.chain.transact(caller, self.instance.address, 'execute', list(wills))


def pair_instances(a: Deployment, b: Deployment):
    """Trust each other's instance and fund both with bridge fee tokens"""
    a.chain.transact(a.owner.address, a.instance.address, 'set_trusted_remote', b.selector, b.instance.address)
    b.chain.transact(b.owner.address, b.instance.address, 'set_trusted_remote', a.selector, a.instance.address)
    a.fee_token.mint(a.instance.address, 10 ** 9)
    b.fee_token.mint(b.instance.address, 10 ** 9)


def simple_will(vault: str, selector: int, executor: str, cooldown: int = 0, **changes) -> Will:
    will = Will(
        vault=vault,
        chain_selector=selector,
        native=NativeAllocation([addr(101), addr(102)], [50, 50]),
        executors=[executor],
        cooldown=cooldown,
    )
    return will.replace(**changes) if changes else will
