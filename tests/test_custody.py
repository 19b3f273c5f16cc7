"""Chain-of-custody entries and derived reports."""

import unittest
from datetime import datetime, timedelta, timezone

from custodyseal.custody import (
    CustodyAction,
    CustodyEntry,
    CustodyIntegrityStatus,
    CustodyReport,
    derive_integrity_status,
)
from custodyseal.hashing import sha512_hex

T0 = datetime(2025, 6, 1, 9, 0, 0, tzinfo=timezone.utc)


def entry(action, passed=True, minutes=0, hash_hex=None):
    return CustodyEntry(
        action=action,
        hash=hash_hex or sha512_hex("report"),
        actor_id="examiner-1",
        integrity_check_passed=passed,
        device_id="dev-3",
        timestamp=T0 + timedelta(minutes=minutes),
    )


class TestCustodyEntry(unittest.TestCase):

    def test_action_coerced_from_string(self):
        e = entry("SEALED")
        self.assertIs(e.action, CustodyAction.SEALED)

    def test_unknown_action_rejected(self):
        with self.assertRaises(ValueError):
            entry("DELETED")

    def test_hash_normalized(self):
        e = entry(CustodyAction.UPLOADED, hash_hex=sha512_hex("report").upper())
        self.assertEqual(e.hash, sha512_hex("report"))

    def test_ids_unique(self):
        self.assertNotEqual(entry(CustodyAction.UPLOADED).id, entry(CustodyAction.UPLOADED).id)

    def test_to_dict(self):
        d = entry(CustodyAction.EXPORTED).to_dict()
        self.assertEqual(d["action"], "EXPORTED")
        self.assertEqual(d["actorId"], "examiner-1")
        self.assertEqual(d["deviceId"], "dev-3")
        self.assertTrue(d["integrityCheckPassed"])
        self.assertEqual(d["timestamp"], "2025-06-01T09:00:00.000Z")


class TestCustodyReport(unittest.TestCase):

    def test_empty_report(self):
        report = CustodyReport(entries=())
        self.assertEqual(report.total_entries, 0)
        self.assertIsNone(report.start_time)
        self.assertIsNone(report.end_time)
        self.assertEqual(report.integrity_status, CustodyIntegrityStatus.ALL_VERIFIED)

    def test_span_and_status(self):
        report = CustodyReport(entries=(
            entry(CustodyAction.UPLOADED, minutes=0),
            entry(CustodyAction.PROCESSED, minutes=5),
            entry(CustodyAction.SEALED, minutes=9),
        ))
        self.assertEqual(report.total_entries, 3)
        self.assertEqual(report.start_time, T0)
        self.assertEqual(report.end_time, T0 + timedelta(minutes=9))
        d = report.to_dict()
        self.assertEqual(d["integrityStatus"], "ALL_VERIFIED")
        self.assertEqual(d["startTime"], "2025-06-01T09:00:00.000Z")
        self.assertEqual([e["action"] for e in d["entries"]], ["UPLOADED", "PROCESSED", "SEALED"])

    def test_derived_status(self):
        ok = entry(CustodyAction.UPLOADED, True)
        bad = entry(CustodyAction.EXPORTED, False)
        self.assertEqual(derive_integrity_status([ok, ok]), CustodyIntegrityStatus.ALL_VERIFIED)
        self.assertEqual(derive_integrity_status([ok, bad]), CustodyIntegrityStatus.SOME_FAILED)
        self.assertEqual(derive_integrity_status([bad, bad]), CustodyIntegrityStatus.FAILED)


if __name__ == "__main__":
    unittest.main()
