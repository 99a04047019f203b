import unittest

from mementomori.chain.errors import SignatureError, CallRejected, InsufficientBalance
from mementomori.chain.keys import (
    AccountKey, address_from_public_key, verify_signature, normalize_address, is_address,
)
from mementomori.chain.ledger import Chain
from mementomori.chain.vault import MultisigVault
from tests.fixtures import addr


class TestAccountKeys(unittest.TestCase):

    def test_sign_and_verify(self):
        """Test message signing round trip"""
        key = AccountKey()
        signature = key.sign_message(b"memento")
        self.assertTrue(verify_signature(b"memento", signature, key.get_public_key_hex()))
        self.assertFalse(verify_signature(b"mori", signature, key.get_public_key_hex()))
        self.assertFalse(verify_signature(b"memento", "zz", key.get_public_key_hex()))

    def test_address_derivation(self):
        private_hex, public_hex = AccountKey.generate_key_pair()
        key = AccountKey(bytes.fromhex(private_hex))
        self.assertEqual(key.address, address_from_public_key(public_hex))
        self.assertTrue(is_address(key.address))

    def test_normalize_address(self):
        self.assertEqual(normalize_address("0x" + "AB" * 20), "0x" + "ab" * 20)
        with self.assertRaises(ValueError):
            normalize_address("0x12")


class TestMultisigVault(unittest.TestCase):

    def setUp(self):
        """Set up a 2-of-3 vault"""
        self.chain = Chain(1)
        self.keys = [AccountKey() for _ in range(3)]
        self.vault = self.chain.deploy(MultisigVault, [k.address for k in self.keys], 2)
        self.chain.mint_native(self.vault.address, 500)

    def _submit(self, tx, signers):
        signatures = [self.vault.sign_transaction(tx, k) for k in signers]
        return self.chain.transact(self.keys[0].address, self.vault.address, 'submit', tx, signatures)

    def test_vault_creation(self):
        with self.assertRaises(ValueError):
            self.chain.deploy(MultisigVault, [self.keys[0].address], 2)
        with self.assertRaises(ValueError):
            self.chain.deploy(MultisigVault, [self.keys[0].address, self.keys[0].address], 1)

    def test_threshold_transfer(self):
        tx = self.vault.build_transaction(addr(5), value=200)
        self._submit(tx, self.keys[:2])
        self.assertEqual(self.chain.balance_of(addr(5)), 200)
        self.assertEqual(self.vault.nonce, 1)

    def test_below_threshold(self):
        tx = self.vault.build_transaction(addr(5), value=200)
        with self.assertRaises(SignatureError):
            self._submit(tx, self.keys[:1])
        self.assertEqual(self.vault.nonce, 0)

    def test_non_owner_signature(self):
        tx = self.vault.build_transaction(addr(5), value=200)
        with self.assertRaises(SignatureError):
            self._submit(tx, [self.keys[0], AccountKey()])

    def test_duplicate_signer(self):
        tx = self.vault.build_transaction(addr(5), value=200)
        with self.assertRaises(SignatureError):
            self._submit(tx, [self.keys[0], self.keys[0]])

    def test_signature_bound_to_transaction(self):
        """Signatures over one transaction do not authorise another"""
        signed = self.vault.build_transaction(addr(5), value=1)
        tampered = self.vault.build_transaction(addr(5), value=500)
        signatures = [self.vault.sign_transaction(signed, k) for k in self.keys[:2]]
        with self.assertRaises(SignatureError):
            self.chain.transact(self.keys[0].address, self.vault.address, 'submit', tampered, signatures)

    def test_replay_rejected(self):
        tx = self.vault.build_transaction(addr(5), value=100)
        self._submit(tx, self.keys[:2])
        with self.assertRaises(SignatureError):
            self._submit(tx, self.keys[:2])

    def test_failed_inner_call_reverts(self):
        tx = self.vault.build_transaction(addr(5), value=10_000)
        with self.assertRaises(InsufficientBalance):
            self._submit(tx, self.keys[:2])
        self.assertEqual(self.vault.nonce, 0)
        self.assertEqual(self.chain.balance_of(self.vault.address), 500)

    def test_modules(self):
        """Only the vault enables modules; only modules move assets"""
        module = addr(42)
        with self.assertRaises(CallRejected):
            self.chain.transact(self.keys[0].address, self.vault.address, 'enable_module', module)
        with self.assertRaises(CallRejected):
            self.chain.transact(module, self.vault.address, 'exec_from_module', addr(5), 10, None)

        self._submit(self.vault.build_transaction(self.vault.address, 'enable_module', module), self.keys[1:])
        self.assertTrue(self.vault.is_module_enabled(module))

        self.assertTrue(self.chain.transact(module, self.vault.address, 'exec_from_module', addr(5), 10, None))
        self.assertEqual(self.chain.balance_of(addr(5)), 10)
        self.assertFalse(self.chain.transact(module, self.vault.address, 'exec_from_module', addr(5), 10_000, None))
        self.assertEqual(len(self.chain.events_named("ExecutionFromModuleFailure")), 1)

        self._submit(self.vault.build_transaction(self.vault.address, 'disable_module', module), self.keys[1:])
        self.assertFalse(self.vault.is_module_enabled(module))


class TestChain(unittest.TestCase):

    def test_atomic_restores_state(self):
        chain = Chain(1)
        chain.mint_native(addr(1), 10)
        with self.assertRaises(RuntimeError):
            with chain.atomic():
                chain.transfer_native(addr(1), addr(2), 10)
                raise RuntimeError("boom")
        self.assertEqual(chain.balance_of(addr(1)), 10)
        self.assertEqual(chain.balance_of(addr(2)), 0)

    def test_clock(self):
        chain = Chain(1, start_time=100)
        self.assertEqual(chain.advance(5), 105)
        with self.assertRaises(ValueError):
            chain.advance(-1)


if __name__ == '__main__':
    unittest.main()
