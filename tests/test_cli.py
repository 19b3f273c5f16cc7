import io
import json
import os
import shutil
import tempfile
import unittest
from contextlib import redirect_stderr, redirect_stdout

from custodyseal.cli import main
from custodyseal.hashing import sha512_hex
from custodyseal.vault import InMemoryEvidenceVault, RecordType

from tests.helpers import ABU_DHABI, CAPE_TOWN, report_hash, summary_dict, write_artifact


class TestCli(unittest.TestCase):

    def setUp(self):
        self.tmpdir = tempfile.mkdtemp()

    def tearDown(self):
        shutil.rmtree(self.tmpdir, ignore_errors=True)

    def path(self, name):
        return os.path.join(self.tmpdir, name)

    def write_json(self, name, data):
        with open(self.path(name), "w", encoding="utf-8") as f:
            json.dump(data, f)
        return self.path(name)

    def run_cli(self, *argv):
        out, err = io.StringIO(), io.StringIO()
        with redirect_stdout(out), redirect_stderr(err):
            code = main(list(argv))
        return code, out.getvalue()

    def test_seal_then_verify(self):
        with open(self.path("report.txt"), "wb") as f:
            f.write(b"forensic report body")
        meta = self.write_json("meta.json", {"caseId": "C-1042"})

        code, _ = self.run_cli(
            "seal", "-c", self.path("report.txt"), "-m", meta,
            "-t", "2025-06-01T09:30:00+00:00",
            "-k", self.path("key.json"), "-o", self.path("seal.json"),
        )
        self.assertEqual(code, 0)
        with open(self.path("seal.json"), encoding="utf-8") as f:
            self.assertEqual(json.load(f)["timestamp"], "2025-06-01T09:30:00Z")

        code, out = self.run_cli(
            "verify-seal", "-c", self.path("report.txt"), "-m", meta,
            "-s", self.path("seal.json"), "-k", self.path("key.json"),
        )
        self.assertEqual(code, 0)
        self.assertTrue(json.loads(out)["keyed"])

        with open(self.path("report.txt"), "ab") as f:
            f.write(b"!")
        code, _ = self.run_cli(
            "verify-seal", "-c", self.path("report.txt"), "-m", meta, "-s", self.path("seal.json"),
        )
        self.assertEqual(code, 1)

    def test_verify_artifact_exit_codes(self):
        artifact, anchor = write_artifact()
        try:
            self.assertEqual(self.run_cli("verify-artifact", artifact, "-a", anchor)[0], 0)
            self.assertEqual(self.run_cli("verify-artifact", artifact, "-a", "0" * 64)[0], 1)
            self.assertEqual(self.run_cli("verify-artifact", artifact + ".missing", "-a", anchor)[0], 2)
        finally:
            os.remove(artifact)

    def test_hash(self):
        with open(self.path("file.bin"), "wb") as f:
            f.write(b"abc")
        code, out = self.run_cli("hash", "-f", self.path("file.bin"))
        self.assertEqual(code, 0)
        self.assertEqual(out.strip(), f"{sha512_hex(b'abc')}  {self.path('file.bin')}")

    def test_classify(self):
        coords = self.write_json("coords.json", [ABU_DHABI, CAPE_TOWN])
        code, out = self.run_cli("classify", "-c", coords)
        self.assertEqual(code, 0)
        self.assertEqual(json.loads(out)["primary"], "UAE")

        bad = self.write_json("bad.json", [{"latitude": 95.0, "longitude": 0.0}])
        self.assertEqual(self.run_cli("classify", "-c", bad)[0], 1)

    def test_validate_detached(self):
        good = self.write_json("good.json", summary_dict(report_hash("r")))
        self.assertEqual(self.run_cli("validate", "-s", good)[0], 0)

        bad = self.write_json("bad.json", summary_dict(report_hash("r"), integrityScore=150))
        code, out = self.run_cli("validate", "-s", bad)
        self.assertEqual(code, 1)
        self.assertEqual(json.loads(out)["rule"], "INTEGRITY_SCORE")

        anchored = self.write_json("anchored.json", summary_dict(report_hash("r"), apkRootHash="ab" * 32))
        self.assertEqual(self.run_cli("validate", "-s", anchored, "-a", "ab" * 32)[0], 0)
        code, out = self.run_cli("validate", "-s", anchored, "-a", "cd" * 32)
        self.assertEqual(code, 1)
        self.assertEqual(json.loads(out)["rule"], "ARTIFACT_ANCHOR")

    def test_verify_chain(self):
        vault = InMemoryEvidenceVault()
        for label in ("a", "b"):
            vault.store(sha512_hex(label), RecordType.FORENSIC)
        entries = [e.to_dict() for e in vault.export_log()]
        log = self.write_json("log.json", entries)
        code, out = self.run_cli("verify-chain", "-l", log)
        self.assertEqual(code, 0)
        self.assertIn("PASS", out)

        entries[1]["recordId"] = "rec_forged"
        log = self.write_json("forged.json", entries)
        code, out = self.run_cli("verify-chain", "-l", log)
        self.assertEqual(code, 1)
        self.assertIn("FAIL", out)

    def test_no_command(self):
        self.assertEqual(self.run_cli()[0], 2)


if __name__ == "__main__":
    unittest.main()
