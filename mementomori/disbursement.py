"""
Disbursement engine.

Every asset class goes through the same split routine; only the way the
vault balance is read and the way a transfer is issued differ per class.
"""

import logging
from dataclasses import dataclass
from typing import List, Optional, Tuple

from .chain.assets import FungibleToken, MultiToken
from .chain.errors import ChainError
from .chain.ledger import Chain, ContractCall
from .errors import TransferFailed
from .will import AssetClass, Will

logger = logging.getLogger(__name__)


def split_amounts(balance: int, percentages: List[int]) -> List[int]:
    """Floor shares in list order; the last entry takes the remainder so
    the amounts always sum to `balance` exactly."""
    if not percentages:
        return []
    amounts = [balance * pct // 100 for pct in percentages[:-1]]
    amounts.append(balance - sum(amounts))
    return amounts


@dataclass
class TransferInstruction:
    asset_class: AssetClass
    asset: Optional[str]
    beneficiary: str
    amount: int
    token_id: Optional[int] = None

    def payload(self, vault: str) -> Tuple[str, int, Optional[ContractCall]]:
        """(target, value, call) for the vault adapter"""
        if self.asset_class is AssetClass.NATIVE:
            return self.beneficiary, self.amount, None
        if self.asset_class is AssetClass.TOKEN:
            return self.asset, 0, ContractCall('transfer', [self.beneficiary, self.amount])
        if self.asset_class is AssetClass.NFT:
            return self.asset, 0, ContractCall('transfer_from', [vault, self.beneficiary, self.token_id])
        return self.asset, 0, ContractCall(
            'safe_transfer_from', [vault, self.beneficiary, self.token_id, self.amount]
        )


class BalanceReader:
    """Reads a vault's holdings straight from the chain, never cached"""

    def __init__(self, chain: Chain):
        self.chain = chain

    def _asset(self, address: str, expected: type):
        try:
            contract = self.chain.contract(address)
        except ChainError as exc:
            raise TransferFailed(f"Cannot read balance of {address}", str(exc))
        if not isinstance(contract, expected):
            raise TransferFailed(f"{address} is not a {expected.__name__}")
        return contract

    def read(self, allocation, vault: str) -> int:
        asset_class = allocation.asset_class
        if asset_class is AssetClass.NATIVE:
            return self.chain.balance_of(vault)
        if asset_class is AssetClass.TOKEN:
            return self._asset(allocation.asset, FungibleToken).balance_of(vault)
        if asset_class is AssetClass.MULTI_TOKEN:
            return self._asset(allocation.asset, MultiToken).balance_of(vault, allocation.token_id)
        raise ValueError(f"{asset_class} has no splittable balance")


def plan_allocation(allocation, vault: str, reader: BalanceReader) -> List[TransferInstruction]:
    """Transfer instructions for one allocation against the current balance"""
    if allocation.is_empty():
        return []

    asset_class = allocation.asset_class
    if asset_class is AssetClass.NFT:
        return [
            TransferInstruction(asset_class, allocation.asset, beneficiary, 1, token_id)
            for token_id, beneficiary in zip(allocation.token_ids, allocation.beneficiaries)
        ]

    balance = reader.read(allocation, vault)
    amounts = split_amounts(balance, allocation.percentages)
    asset = getattr(allocation, 'asset', None)
    token_id = getattr(allocation, 'token_id', None)
    logger.debug("Split %s %s balance %d into %s", asset_class.value, asset or "native", balance, amounts)

    return [
        TransferInstruction(asset_class, asset, beneficiary, amount, token_id)
        for beneficiary, amount in zip(allocation.beneficiaries, amounts)
        if amount > 0
    ]


def plan_disbursement(will: Will, reader: BalanceReader) -> List[TransferInstruction]:
    """Preview every transfer `will` would issue at current balances"""
    instructions = []
    for allocation in will.allocations():
        instructions.extend(plan_allocation(allocation, will.vault, reader))
    return instructions


class Disburser:
    """Issues transfer instructions through the vault's module interface"""

    def __init__(self, chain: Chain, module_address: str):
        self.chain = chain
        self.module_address = module_address
        self.reader = BalanceReader(chain)

    def issue(self, vault: str, instruction: TransferInstruction):
        target, value, call = instruction.payload(vault)
        try:
            ok = self.chain.call(self.module_address, vault, 'exec_from_module', target, value, call)
        except ChainError as exc:
            raise TransferFailed(f"Vault {vault} refused module call", str(exc))
        if not ok:
            raise TransferFailed(
                f"{instruction.asset_class.value} transfer of {instruction.amount} to "
                f"{instruction.beneficiary} failed",
                {'asset': instruction.asset, 'token_id': instruction.token_id},
            )

    def disburse(self, will: Will) -> List[TransferInstruction]:
        """Distribute everything `will` covers. Each allocation reads its
        balance just before its own transfers are issued."""
        issued = []
        for allocation in will.allocations():
            for instruction in plan_allocation(allocation, will.vault, self.reader):
                self.issue(will.vault, instruction)
                issued.append(instruction)
        logger.info("Disbursed %d transfers from vault %s", len(issued), will.vault)
        return issued
