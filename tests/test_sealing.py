"""
CustodySeal Sealing Engine Tests

Critical invariant tested:
    ANY CHANGE TO SEALED CONTENT OR METADATA CHANGES finalHash
"""

import json
import os
import shutil
import tempfile
import unittest
from datetime import datetime, timezone

from custodyseal.canonicalization import serialize_metadata
from custodyseal.errors import CustodySealError, HashMismatch
from custodyseal.hashing import hmac_sha512_hex, sha512_hex
from custodyseal.sealing import (
    InMemorySealKeyStore,
    Seal,
    SealingEngine,
    SealKey,
    SealStatus,
    SecretBoxSealKeyStore,
)

TS = datetime(2025, 6, 1, 9, 30, 0, tzinfo=timezone.utc)
CONTENT = b"%PDF-1.7 forensic report body"
METADATA = {"caseId": "C-1042", "examiner": "unit-7", "deviceId": "dev-3"}


class TestSeal(unittest.TestCase):
    """Seal construction."""

    def setUp(self):
        self.engine = SealingEngine()
        self.key = SealKey.generate()

    def test_deterministic_with_same_key(self):
        """Same content, metadata, timestamp and key give identical hashes."""
        a = self.engine.seal(CONTENT, METADATA, TS, self.key)
        b = self.engine.seal(CONTENT, METADATA, TS, self.key)
        self.assertEqual(a, b)

    def test_metadata_order_does_not_matter(self):
        """Permuted metadata insertion order gives the same metadataHash and finalHash."""
        reordered = dict(reversed(list(METADATA.items())))
        a = self.engine.seal(CONTENT, METADATA, TS, self.key)
        b = self.engine.seal(CONTENT, reordered, TS, self.key)
        self.assertEqual(a.metadata_hash, b.metadata_hash)
        self.assertEqual(a.final_hash, b.final_hash)

    def test_one_byte_change_changes_final_hash(self):
        """Modifying one byte of content changes finalHash."""
        tampered = bytearray(CONTENT)
        tampered[0] ^= 0x01
        a = self.engine.seal(CONTENT, METADATA, TS, self.key)
        b = self.engine.seal(bytes(tampered), METADATA, TS, self.key)
        self.assertNotEqual(a.final_hash, b.final_hash)

    def test_fresh_keys_give_different_seals(self):
        """The key is the only randomized input."""
        a = self.engine.seal(CONTENT, METADATA, TS)
        b = self.engine.seal(CONTENT, METADATA, TS)
        self.assertEqual(a.content_hash, b.content_hash)
        self.assertEqual(a.metadata_hash, b.metadata_hash)
        self.assertNotEqual(a.seal_hash, b.seal_hash)
        self.assertNotEqual(a.final_hash, b.final_hash)

    def test_hash_composition(self):
        """Each stage follows the triple-hash construction."""
        seal = self.engine.seal(CONTENT, METADATA, TS, self.key)
        content_hash = sha512_hex(CONTENT)
        metadata_hash = sha512_hex(serialize_metadata(METADATA))
        combined = f"{content_hash}|{metadata_hash}|2025-06-01T09:30:00Z"
        seal_hash = hmac_sha512_hex(self.key.material, combined)

        self.assertEqual(seal.content_hash, content_hash)
        self.assertEqual(seal.metadata_hash, metadata_hash)
        self.assertEqual(seal.seal_hash, seal_hash)
        self.assertEqual(seal.final_hash, sha512_hex(f"{content_hash}|{metadata_hash}|{seal_hash}"))
        self.assertEqual(seal.timestamp, "2025-06-01T09:30:00Z")
        self.assertEqual(seal.seal_key_id, self.key.key_id)

    def test_hashes_are_lowercase_sha512_hex(self):
        seal = self.engine.seal("text content", {}, TS, self.key)
        for value in (seal.content_hash, seal.metadata_hash, seal.seal_hash, seal.final_hash):
            self.assertEqual(len(value), 128)
            self.assertEqual(value, value.lower())

    def test_default_timestamp_uses_clock(self):
        engine = SealingEngine(clock=lambda: TS)
        self.assertEqual(engine.seal(CONTENT, METADATA).timestamp, "2025-06-01T09:30:00Z")

    def test_seal_dict_round_trip(self):
        seal = self.engine.seal(CONTENT, METADATA, TS, self.key)
        self.assertEqual(Seal.from_dict(json.loads(json.dumps(seal.to_dict()))), seal)

    def test_key_material_not_in_repr(self):
        self.assertNotIn(self.key.material.hex(), repr(self.key))

    def test_key_length_enforced(self):
        with self.assertRaises(ValueError):
            SealKey.from_material(b"short")


class TestSealVerification(unittest.TestCase):
    """Public and keyed verification."""

    def setUp(self):
        self.engine = SealingEngine()
        self.key = SealKey.generate()
        self.seal = self.engine.seal(CONTENT, METADATA, TS, self.key)

    def test_public_verification_intact(self):
        result = self.engine.verify(CONTENT, METADATA, self.seal)
        self.assertEqual(result.status, SealStatus.INTACT)
        self.assertFalse(result.keyed)

    def test_keyed_verification_intact(self):
        result = self.engine.verify(CONTENT, METADATA, self.seal, self.key)
        self.assertTrue(result.is_intact())
        self.assertTrue(result.keyed)

    def test_content_tamper_detected(self):
        result = self.engine.verify(CONTENT + b" ", METADATA, self.seal)
        self.assertEqual(result.status, SealStatus.TAMPERED)
        self.assertEqual(result.component, "content")
        self.assertEqual(result.expected, self.seal.content_hash)

    def test_metadata_tamper_detected(self):
        result = self.engine.verify(CONTENT, dict(METADATA, examiner="unit-8"), self.seal)
        self.assertEqual(result.component, "metadata")

    def test_recorded_seal_hash_tamper_detected(self):
        forged = Seal.from_dict(dict(self.seal.to_dict(), sealHash="0" * 128))
        result = self.engine.verify(CONTENT, METADATA, forged)
        self.assertEqual(result.component, "final")

    def test_timestamp_tamper_needs_key(self):
        """A rewritten timestamp passes public verification but fails keyed verification."""
        forged = Seal.from_dict(dict(self.seal.to_dict(), timestamp="2020-01-01T00:00:00Z"))
        self.assertTrue(self.engine.verify(CONTENT, METADATA, forged).is_intact())
        result = self.engine.verify(CONTENT, METADATA, forged, self.key)
        self.assertEqual(result.status, SealStatus.TAMPERED)
        self.assertEqual(result.component, "seal")

    def test_uppercase_recorded_hashes_accepted(self):
        upper = Seal.from_dict({k: v.upper() if k.endswith("Hash") else v for k, v in self.seal.to_dict().items()})
        self.assertTrue(self.engine.verify(CONTENT, METADATA, upper, self.key).is_intact())

    def test_verify_or_raise(self):
        with self.assertRaises(HashMismatch):
            self.engine.verify_or_raise(b"other", METADATA, self.seal)
        self.assertTrue(self.engine.verify_or_raise(CONTENT, METADATA, self.seal).is_intact())


class TestKeyEscrow(unittest.TestCase):
    """Seal keys escrowed in key stores."""

    def setUp(self):
        self.tmpdir = tempfile.mkdtemp()
        self.path = os.path.join(self.tmpdir, "keys.json")
        self.master = SecretBoxSealKeyStore.generate_master_key()

    def tearDown(self):
        shutil.rmtree(self.tmpdir, ignore_errors=True)

    def test_engine_escrows_and_uses_key(self):
        """Verification picks the key up from the store and checks the timestamp."""
        engine = SealingEngine(InMemorySealKeyStore())
        seal = engine.seal(CONTENT, METADATA, TS)
        self.assertTrue(engine.verify(CONTENT, METADATA, seal).keyed)

    def test_secretbox_store_round_trip(self):
        key = SealKey.generate()
        SecretBoxSealKeyStore(self.path, self.master).put(key)
        reloaded = SecretBoxSealKeyStore(self.path, self.master).get(key.key_id)
        self.assertEqual(reloaded, key)

    def test_secretbox_store_never_writes_plaintext(self):
        key = SealKey.generate()
        SecretBoxSealKeyStore(self.path, self.master).put(key)
        with open(self.path, "rb") as f:
            raw = f.read()
        self.assertNotIn(key.material, raw)
        self.assertNotIn(key.material.hex().encode("ascii"), raw)

    def test_secretbox_wrong_master_key(self):
        key = SealKey.generate()
        SecretBoxSealKeyStore(self.path, self.master).put(key)
        other = SecretBoxSealKeyStore(self.path, SecretBoxSealKeyStore.generate_master_key())
        with self.assertRaises(CustodySealError):
            other.get(key.key_id)

    def test_unknown_key_id(self):
        self.assertIsNone(SecretBoxSealKeyStore(self.path, self.master).get("seal-missing"))

    def test_master_key_length(self):
        with self.assertRaises(ValueError):
            SecretBoxSealKeyStore(self.path, b"short")


if __name__ == "__main__":
    unittest.main()
