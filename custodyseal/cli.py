#!/usr/bin/env python3
"""
CustodySeal Command Line Interface

Usage:
    custodyseal seal --content <file> --metadata <file> [--key-out <file>]
    custodyseal verify-seal --content <file> --metadata <file> --seal <file> [--key <file>]
    custodyseal verify-artifact <path> [--anchor <hex>] [--timeout <seconds>]
    custodyseal hash --file <file> [--algorithm sha256|sha512]
    custodyseal classify --coordinates <file> [--table <file>]
    custodyseal validate --summary <file> [--vault <sqlite file>] [--anchor <hex>]
    custodyseal verify-chain --log <file>
    custodyseal keygen-master
"""

import argparse
import json
import sys
from datetime import datetime
from typing import List, Optional


def load_json(path: str):
    """Load JSON from file."""
    with open(path, 'r', encoding='utf-8') as f:
        return json.load(f)


def save_json(data, path: str):
    """Save JSON to file."""
    with open(path, 'w', encoding='utf-8') as f:
        json.dump(data, f, indent=2)


def read_bytes(path: str) -> bytes:
    with open(path, 'rb') as f:
        return f.read()


def load_seal_key(path: str):
    from .sealing import SealKey
    from .util import b64d

    raw = load_json(path)
    return SealKey(key_id=raw["keyId"], material=b64d(raw["materialB64"]))


def cmd_seal(args) -> int:
    """Seal a content file with JSON metadata."""
    from .sealing import SealingEngine, SealKey
    from .util import b64e

    content = read_bytes(args.content)
    metadata = load_json(args.metadata)
    timestamp = datetime.fromisoformat(args.timestamp) if args.timestamp else None

    key = SealKey.generate()
    seal = SealingEngine().seal(content, metadata, timestamp, key)

    if args.key_out:
        save_json({"keyId": key.key_id, "materialB64": b64e(key.material)}, args.key_out)
        print(f"Seal key saved to: {args.key_out}", file=sys.stderr)

    if args.output:
        save_json(seal.to_dict(), args.output)
        print(f"Seal saved to: {args.output}", file=sys.stderr)
    else:
        print(json.dumps(seal.to_dict(), indent=2))
    return 0


def cmd_verify_seal(args) -> int:
    """Verify a seal against content and metadata."""
    from .sealing import Seal, SealingEngine

    content = read_bytes(args.content)
    metadata = load_json(args.metadata)
    seal = Seal.from_dict(load_json(args.seal))
    key = load_seal_key(args.key) if args.key else None

    result = SealingEngine().verify(content, metadata, seal, key)
    print(json.dumps(result.to_dict(), indent=2))

    if result.is_intact():
        level = "keyed" if result.keyed else "public"
        print(f"\n✓ Seal INTACT ({level} verification)", file=sys.stderr)
        return 0
    print(f"\n✗ Seal TAMPERED: {result.component}", file=sys.stderr)
    return 1


def cmd_verify_artifact(args) -> int:
    """Verify an artifact against its anchor."""
    from .config import Settings
    from .integrity import ArtifactIntegrityVerifier, IntegrityStatus

    settings = Settings.from_env()
    verifier = ArtifactIntegrityVerifier(
        anchor=args.anchor or settings.artifact_anchor,
        timeout_seconds=args.timeout or settings.verify_timeout_seconds,
    )
    report = verifier.verify(args.path)
    print(json.dumps(report.to_dict(), indent=2))

    if report.status == IntegrityStatus.AUTHENTIC:
        print("\n✓ AUTHENTIC", file=sys.stderr)
        return 0
    if report.status == IntegrityStatus.TAMPERED:
        print("\n✗ TAMPERED", file=sys.stderr)
        print(f"  expected:   {report.expected_hash}", file=sys.stderr)
        print(f"  calculated: {report.calculated_hash}", file=sys.stderr)
        return 1
    print(f"\n✗ VERIFICATION_FAILED: {report.message}", file=sys.stderr)
    return 2


def cmd_hash(args) -> int:
    """Compute the digest of a file."""
    from .hashing import sha256_file, sha512_hex

    if args.algorithm == "sha256":
        digest = sha256_file(args.file)
    else:
        digest = sha512_hex(read_bytes(args.file))
    print(f"{digest}  {args.file}")
    return 0


def cmd_classify(args) -> int:
    """Classify a JSON list of coordinates."""
    from .errors import ContractViolation
    from .jurisdiction import JurisdictionRouter

    router = JurisdictionRouter.from_file(args.table) if args.table else JurisdictionRouter()
    coordinates = load_json(args.coordinates)
    if isinstance(coordinates, dict):
        coordinates = coordinates.get("gpsCoordinates", [])
    try:
        assignment = router.classify(coordinates)
    except ContractViolation as e:
        print(f"✗ {e}", file=sys.stderr)
        return 1
    print(json.dumps(assignment.to_dict(), indent=2))
    return 0


def cmd_validate(args) -> int:
    """Validate a sealed summary against the input contract."""
    from .contract import InputContractValidator
    from .vault import SqliteEvidenceVault

    summary = load_json(args.summary)
    if args.vault:
        vault = SqliteEvidenceVault(args.vault)
        try:
            result = InputContractValidator(vault, anchor=args.anchor).validate(summary)
        finally:
            vault.close()
    else:
        result = InputContractValidator(detached=True, anchor=args.anchor).validate(summary)

    print(json.dumps(result.to_dict(), indent=2))
    if result.is_valid():
        print("\n✓ Summary admitted", file=sys.stderr)
        return 0
    print(f"\n✗ {result.message}", file=sys.stderr)
    return 1


def cmd_verify_chain(args) -> int:
    """Verify an exported vault log."""
    from .vault import verify_log_chain

    entries = load_json(args.log)
    if isinstance(entries, dict):
        entries = entries.get("entries", [])
    ok, bad_seq = verify_log_chain(entries)
    if ok:
        print(f"PASS: vault log chain verified ({len(entries)} entries)")
        return 0
    print(f"FAIL: chain broken at seq {bad_seq}")
    return 1


def cmd_keygen_master(args) -> int:
    """Generate a base64 master key for the wrapped seal key escrow."""
    from .sealing import SecretBoxSealKeyStore
    from .util import b64e

    print(b64e(SecretBoxSealKeyStore.generate_master_key()))
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="custodyseal",
        description="CustodySeal sealing and custody CLI",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  custodyseal seal -c report.pdf -m meta.json -k key.json -o seal.json
  custodyseal verify-seal -c report.pdf -m meta.json -s seal.json -k key.json
  custodyseal verify-artifact build/app-release.apk
  custodyseal classify -c coordinates.json
  custodyseal validate -s summary.json
  custodyseal verify-chain -l vault_log.json
        """
    )

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    seal_parser = subparsers.add_parser("seal", help="Seal a content file")
    seal_parser.add_argument("-c", "--content", required=True, help="Content file")
    seal_parser.add_argument("-m", "--metadata", required=True, help="Metadata JSON file")
    seal_parser.add_argument("-t", "--timestamp", help="ISO-8601 timestamp (default: now)")
    seal_parser.add_argument("-k", "--key-out", help="Write the seal key to this file")
    seal_parser.add_argument("-o", "--output", help="Output file for the seal")

    verify_parser = subparsers.add_parser("verify-seal", help="Verify a seal")
    verify_parser.add_argument("-c", "--content", required=True, help="Content file")
    verify_parser.add_argument("-m", "--metadata", required=True, help="Metadata JSON file")
    verify_parser.add_argument("-s", "--seal", required=True, help="Seal JSON file")
    verify_parser.add_argument("-k", "--key", help="Seal key file for keyed verification")

    artifact_parser = subparsers.add_parser("verify-artifact", help="Verify an artifact against its anchor")
    artifact_parser.add_argument("path", help="Artifact path")
    artifact_parser.add_argument("-a", "--anchor", help="Expected SHA-256 (default: configured anchor)")
    artifact_parser.add_argument("-t", "--timeout", type=float, help="Read timeout in seconds")

    hash_parser = subparsers.add_parser("hash", help="Compute a file digest")
    hash_parser.add_argument("-f", "--file", required=True, help="File to hash")
    hash_parser.add_argument("-a", "--algorithm", choices=("sha256", "sha512"), default="sha512")

    classify_parser = subparsers.add_parser("classify", help="Classify coordinates into jurisdictions")
    classify_parser.add_argument("-c", "--coordinates", required=True, help="Coordinates JSON file")
    classify_parser.add_argument("-t", "--table", help="Jurisdiction table JSON file")

    validate_parser = subparsers.add_parser("validate", help="Validate a sealed summary")
    validate_parser.add_argument("-s", "--summary", required=True, help="Sealed summary JSON file")
    validate_parser.add_argument("-v", "--vault", help="SQLite vault for the custody check (default: detached)")
    validate_parser.add_argument("-a", "--anchor", help="Release SHA-256 anchor that apkRootHash must match")

    chain_parser = subparsers.add_parser("verify-chain", help="Verify an exported vault log")
    chain_parser.add_argument("-l", "--log", required=True, help="Exported vault log JSON file")

    subparsers.add_parser("keygen-master", help="Generate a key escrow master key")

    return parser


COMMANDS = {
    "seal": cmd_seal,
    "verify-seal": cmd_verify_seal,
    "verify-artifact": cmd_verify_artifact,
    "hash": cmd_hash,
    "classify": cmd_classify,
    "validate": cmd_validate,
    "verify-chain": cmd_verify_chain,
    "keygen-master": cmd_keygen_master,
}


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    command = COMMANDS.get(args.command)
    if command is None:
        parser.print_help()
        return 2
    return command(args)


if __name__ == "__main__":
    sys.exit(main())
