import unittest

from mementomori.chain.keys import ZERO_ADDRESS
from mementomori.will import (
    Will, NativeAllocation, TokenAllocation, NFTAllocation, MultiTokenAllocation, AssetClass,
)
from tests.fixtures import addr


class TestWill(unittest.TestCase):

    def setUp(self):
        """Will touching every asset class"""
        self.will = Will(
            vault=addr(1),
            chain_selector=7,
            native=NativeAllocation([addr(10), addr(11)], [60, 40]),
            tokens=[TokenAllocation(addr(20), [addr(10)], [100])],
            nfts=[NFTAllocation(addr(30), [5, 6], [addr(10), addr(11)])],
            multi_tokens=[MultiTokenAllocation(addr(40), 3, [addr(11)], [100])],
            executors=[addr(50), addr(51)],
            cooldown=3600,
        )

    def test_origin_defaults_to_vault(self):
        """A will with no origin fields originates where it disburses"""
        self.assertEqual(self.will.origin_vault, addr(1))
        self.assertEqual(self.will.origin_chain_selector, 7)
        self.assertEqual(self.will.remote_instance, ZERO_ADDRESS)
        self.assertFalse(self.will.is_remote_for(7))
        self.assertTrue(self.will.is_remote_for(8))

    def test_hash_is_deterministic(self):
        """Same content gives the same fingerprint"""
        copy = Will.from_dict(self.will.to_dict())
        self.assertEqual(self.will.commitment_hash(), copy.commitment_hash())
        self.assertEqual(len(self.will.commitment_hash()), 64)

    def test_hash_binds_every_field(self):
        """Changing any committed field changes the fingerprint"""
        original = self.will.commitment_hash()
        mutations = [
            dict(vault=addr(2), origin_vault=addr(1)),
            dict(chain_selector=8),
            dict(native=NativeAllocation([addr(10), addr(11)], [40, 60])),
            dict(native=NativeAllocation([addr(11), addr(10)], [60, 40])),
            dict(tokens=[TokenAllocation(addr(21), [addr(10)], [100])]),
            dict(tokens=[]),
            dict(nfts=[NFTAllocation(addr(30), [6, 5], [addr(10), addr(11)])]),
            dict(multi_tokens=[MultiTokenAllocation(addr(40), 4, [addr(11)], [100])]),
            dict(executors=[addr(50)]),
            dict(cooldown=3601),
            dict(active=False),
            dict(remote_instance=addr(60)),
            dict(origin_vault=addr(3)),
            dict(origin_chain_selector=9),
        ]
        for changes in mutations:
            with self.subTest(changes=sorted(changes)):
                self.assertNotEqual(self.will.replace(**changes).commitment_hash(), original)

    def test_request_time_not_committed(self):
        """Timing lives in the store, not in the fingerprint"""
        later = self.will.replace(request_time=1_700_000_123)
        self.assertEqual(later.commitment_hash(), self.will.commitment_hash())

    def test_oversized_fields_hash(self):
        """Fields longer than 64 KiB still get a fingerprint"""
        huge = self.will.replace(remote_instance="0x" + "ab" * 40_000)
        self.assertEqual(len(huge.commitment_hash()), 64)
        self.assertNotEqual(huge.commitment_hash(), self.will.commitment_hash())

    def test_executor_order_and_case_ignored(self):
        """Executors are a set"""
        shuffled = self.will.replace(executors=[addr(51).upper().replace("0X", "0x"), addr(50)])
        self.assertEqual(shuffled.commitment_hash(), self.will.commitment_hash())
        self.assertTrue(self.will.is_executor(addr(51).upper().replace("0X", "0x")))
        self.assertFalse(self.will.is_executor(addr(52)))

    def test_allocation_order(self):
        """Native first, then tokens, NFTs and multi-tokens"""
        classes = [a.asset_class for a in self.will.allocations()]
        self.assertEqual(classes, [AssetClass.NATIVE, AssetClass.TOKEN, AssetClass.NFT, AssetClass.MULTI_TOKEN])

    def test_wire_format(self):
        """Wire dictionary uses the camelCase field names"""
        data = self.will.to_dict()
        self.assertEqual(data['safe'], addr(1))
        self.assertEqual(data['chainSelector'], 7)
        self.assertTrue(data['isActive'])
        self.assertEqual(data['erc1155s'][0]['tokenId'], 3)
        self.assertEqual(data['nfts'][0]['tokenIds'], [5, 6])
        self.assertEqual(data['tokens'][0]['contractAddress'], addr(20))

        restored = Will.from_dict(data)
        self.assertEqual(restored, self.will)

    def test_from_dict_without_origin(self):
        """Missing origin fields default to the vault itself"""
        data = self.will.to_dict()
        del data['originSafe']
        del data['originChainSelector']
        restored = Will.from_dict(data)
        self.assertEqual(restored.origin_vault, addr(1))
        self.assertEqual(restored.origin_chain_selector, 7)


if __name__ == '__main__':
    unittest.main()
