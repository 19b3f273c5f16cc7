"""
CustodySeal Sealed Session Tests

Critical invariants tested:
    ONLY HASHES OF QUESTIONS AND RESPONSES ARE KEPT
    A CLOSED SESSION NEVER CHANGES
"""

import threading
import unittest

from custodyseal.errors import ContractViolation, SessionClosedError, SessionNotFound
from custodyseal.hashing import sha512_hex
from custodyseal.sealing import SealingEngine
from custodyseal.session import SealedSessionManager, SessionState, next_chain_hash
from custodyseal.vault import InMemoryEvidenceVault, RecordType

from tests.helpers import report_hash


class TestSealedSession(unittest.TestCase):

    def setUp(self):
        self.vault = InMemoryEvidenceVault()
        self.report_hash = report_hash("sealed-report")
        self.vault.store(self.report_hash, RecordType.FORENSIC)
        self.manager = SealedSessionManager(self.vault, SealingEngine())
        self.session_id = self.manager.open(self.report_hash, "UAE")

    def test_open(self):
        self.assertTrue(self.session_id.startswith("sess_"))
        self.assertEqual(self.manager.state(self.session_id), SessionState.OPEN)
        self.assertIsNone(self.manager.transcript(self.session_id))

    def test_open_requires_sealed_report(self):
        with self.assertRaises(ContractViolation) as ctx:
            self.manager.open(report_hash("never-sealed"), "UAE")
        self.assertEqual(ctx.exception.rule, "CUSTODY")

    def test_open_requires_hash(self):
        with self.assertRaises(ContractViolation) as ctx:
            self.manager.open("abc", "UAE")
        self.assertEqual(ctx.exception.rule, "REPORT_HASH")

    def test_chain_composition(self):
        """Each exchange hashes the previous chain value with its own hashes."""
        first = self.manager.exchange(self.session_id, "What are the next steps?", "File a report.")
        second = self.manager.exchange(self.session_id, "Which authority?", "The regulator.")

        q1, r1 = sha512_hex("What are the next steps?"), sha512_hex("File a report.")
        q2, r2 = sha512_hex("Which authority?"), sha512_hex("The regulator.")
        self.assertEqual(first.question_hash, q1)
        self.assertEqual(first.response_hash, r1)
        self.assertEqual(first.chain_hash, sha512_hex("" + q1 + r1))
        self.assertEqual(second.chain_hash, sha512_hex(first.chain_hash + q2 + r2))
        self.assertEqual(second.chain_hash, next_chain_hash(first.chain_hash, q2, r2))

    def test_transcript_keeps_only_hashes(self):
        self.manager.exchange(self.session_id, "What are the next steps?", "File a report.")
        transcript = self.manager.close(self.session_id)
        text = str(transcript.to_dict())
        self.assertNotIn("next steps", text)
        self.assertNotIn("File a report", text)

    def test_close_seals_and_stores_transcript(self):
        exchange = self.manager.exchange(self.session_id, "What are the next steps?", "File a report.")
        transcript = self.manager.close(self.session_id)

        self.assertEqual(self.manager.state(self.session_id), SessionState.CLOSED)
        self.assertEqual(transcript.chain_hash, exchange.chain_hash)
        self.assertEqual(len(transcript.exchanges), 1)
        self.assertEqual(transcript.jurisdiction, "UAE")
        self.assertIs(self.manager.transcript(self.session_id), transcript)

        record = self.vault.lookup_by_hash(transcript.seal_final_hash)
        self.assertIsNotNone(record)
        self.assertEqual(record.record_type, RecordType.SESSION_TRANSCRIPT)
        self.assertEqual(record.record_id, transcript.vault_record_id)

    def test_empty_session_chain_hash(self):
        transcript = self.manager.close(self.session_id)
        self.assertEqual(transcript.exchanges, ())
        self.assertEqual(transcript.chain_hash, sha512_hex(""))

    def test_closed_session_rejects_everything(self):
        self.manager.close(self.session_id)
        with self.assertRaises(SessionClosedError):
            self.manager.exchange(self.session_id, "Anything else?", "No.")
        with self.assertRaises(SessionClosedError):
            self.manager.close(self.session_id)

    def test_closed_sessions_leave_live_registry(self):
        manager = SealedSessionManager(self.vault, SealingEngine(), max_closed=2)
        ids = [manager.open(self.report_hash) for _ in range(3)]
        transcripts = [manager.close(session_id) for session_id in ids]

        self.assertEqual(manager._sessions, {})
        self.assertEqual(list(manager._closed), ids[1:])
        self.assertIs(manager.transcript(ids[2]), transcripts[2])
        with self.assertRaises(SessionClosedError):
            manager.exchange(ids[1], "Anything else?", "No.")

        # evicted from memory, still in the vault
        with self.assertRaises(SessionNotFound):
            manager.transcript(ids[0])
        self.assertTrue(self.vault.contains(transcripts[0].seal_final_hash))

    def test_closed_check_precedes_question_policy(self):
        self.manager.close(self.session_id)
        with self.assertRaises(SessionClosedError):
            self.manager.exchange(self.session_id, "Can I upload the file?", "No.")

    def test_unknown_session(self):
        with self.assertRaises(SessionNotFound):
            self.manager.exchange("sess_missing", "Anything?", "No.")
        with self.assertRaises(SessionNotFound):
            self.manager.close("sess_missing")
        with self.assertRaises(SessionNotFound):
            self.manager.state("sess_missing")

    def test_rejected_question_leaves_chain_unchanged(self):
        first = self.manager.exchange(self.session_id, "What are the next steps?", "File a report.")
        with self.assertRaises(ContractViolation) as ctx:
            self.manager.exchange(self.session_id, "Here is the raw chat export", "ok")
        self.assertEqual(ctx.exception.rule, "QUESTION_POLICY")
        transcript = self.manager.close(self.session_id)
        self.assertEqual(len(transcript.exchanges), 1)
        self.assertEqual(transcript.chain_hash, first.chain_hash)

    def test_sessions_are_independent(self):
        other = self.manager.open(self.report_hash, "ZA")
        self.manager.exchange(self.session_id, "First?", "Yes.")
        self.manager.close(other)
        self.assertEqual(self.manager.state(self.session_id), SessionState.OPEN)
        self.manager.exchange(self.session_id, "Second?", "Yes.")

    def test_concurrent_exchanges_form_one_chain(self):
        """Parallel exchanges on one session are serialized into a single valid chain."""
        barrier = threading.Barrier(8)

        def worker(n):
            barrier.wait()
            self.manager.exchange(self.session_id, f"Question {n}?", f"Answer {n}.")

        threads = [threading.Thread(target=worker, args=(n,)) for n in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        transcript = self.manager.close(self.session_id)
        self.assertEqual(len(transcript.exchanges), 8)
        chain = ""
        for exchange in transcript.exchanges:
            chain = next_chain_hash(chain, exchange.question_hash, exchange.response_hash)
            self.assertEqual(exchange.chain_hash, chain)
        self.assertEqual(transcript.chain_hash, chain)


if __name__ == "__main__":
    unittest.main()
