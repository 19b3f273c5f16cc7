"""
CustodySeal Canonical Encodings

Two byte encodings feed the hash primitives:

- Metadata encoding: ``key=value`` pairs sorted by key and joined with ``|``.
  Insertion order of the mapping never affects the result.
- Canonical JSON: sorted keys, compact separators, UTF-8. Used for sealing
  structured documents (advisory responses, session transcripts) and for
  vault log payloads.
"""

import json
from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping, Union


METADATA_PAIR_SEPARATOR = "|"
METADATA_KV_SEPARATOR = "="


def serialize_metadata(metadata: Mapping[str, Any]) -> str:
    """
    Serialize seal metadata deterministically.

    Keys are sorted lexicographically (Unicode code point order); values are
    rendered with ``str()``. An empty mapping serializes to the empty string.
    """
    pairs = []
    for key in sorted(metadata.keys()):
        pairs.append(f"{key}{METADATA_KV_SEPARATOR}{metadata[key]}")
    return METADATA_PAIR_SEPARATOR.join(pairs)


def iso8601(timestamp: datetime) -> str:
    """
    Render a timestamp for sealing.

    Timezone-aware values are normalized to UTC with a ``Z`` suffix.
    Naive values are rendered as-is with ``isoformat()``.
    """
    if timestamp.tzinfo is not None:
        timestamp = timestamp.astimezone(timezone.utc)
        return timestamp.isoformat().replace("+00:00", "Z")
    return timestamp.isoformat()


def canonicalize(obj: Any) -> bytes:
    """
    Convert an object to canonical JSON bytes.

    - Object keys sorted lexicographically
    - No whitespace between tokens
    - UTF-8 encoding
    - Arrays preserve order
    """
    canonical = _canonicalize_value(obj)
    return json.dumps(canonical, separators=(',', ':'), ensure_ascii=False).encode('utf-8')


def canonicalize_str(obj: Any) -> str:
    """Return canonical JSON as string."""
    return canonicalize(obj).decode('utf-8')


def _canonicalize_value(value: Any) -> Any:
    if value is None or isinstance(value, (bool, int, float, str)):
        return value
    elif isinstance(value, dict):
        return _canonicalize_object(value)
    elif isinstance(value, (list, tuple)):
        return _canonicalize_array(value)
    elif isinstance(value, (set, frozenset)):
        return _canonicalize_array(sorted(value))
    else:
        raise ValueError(f"Cannot canonicalize type: {type(value)}")


def _canonicalize_object(obj: Dict[str, Any]) -> Dict[str, Any]:
    return {k: _canonicalize_value(obj[k]) for k in sorted(obj.keys())}


def _canonicalize_array(arr: Union[List, tuple]) -> List:
    return [_canonicalize_value(item) for item in arr]
