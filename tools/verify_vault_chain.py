
"""Verify the hash chain of a vault log exported from /vault_log. Standalone: stdlib only."""
import json, sys, hashlib

def sha512_hex(b: bytes) -> str:
    return hashlib.sha512(b).hexdigest()

def canonicalize(obj) -> bytes:
    return json.dumps(obj, sort_keys=True, separators=(",", ":"), ensure_ascii=False).encode("utf-8")

def chain(prev, payload_hash):
    data = (prev or "").encode("utf-8") + payload_hash.encode("utf-8")
    return sha512_hex(data)

def payload_hash(entry):
    return sha512_hex(canonicalize({
        "recordId": entry["recordId"],
        "hash": entry["hash"],
        "timestamp": entry["timestamp"],
        "type": entry["type"],
    }))

def main(path):
    with open(path, "r", encoding="utf-8") as f:
        log = json.load(f)
    prev = None
    for entry in log:
        if entry.get("prevEntryHash") != prev:
            print("FAIL: broken link at seq", entry["seq"])
            return 1
        if payload_hash(entry) != entry["payloadHash"]:
            print("FAIL: payload mismatch at seq", entry["seq"])
            return 1
        if chain(prev, entry["payloadHash"]) != entry["entryHash"]:
            print("FAIL: chain mismatch at seq", entry["seq"])
            return 1
        prev = entry["entryHash"]
    print("PASS: vault log chain valid")
    return 0

if __name__ == "__main__":
    if len(sys.argv) != 2:
        print("Usage: python tools/verify_vault_chain.py <vault_log_export.json>")
        raise SystemExit(2)
    raise SystemExit(main(sys.argv[1]))
