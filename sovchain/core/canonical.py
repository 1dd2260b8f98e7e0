"""
Canonical serialization for checkpoint comparison.

Two checkpoints describe the same state when their canonical bytes match
after volatile fields (timestamps) are removed.
"""

import hashlib
import json
from typing import Any, Iterable


def canonicalize(obj: Any) -> Any:
    """
    Convert arbitrary nested dict/list to canonical form.

    Rules:
    - dict keys sorted alphabetically
    - tuples converted to lists
    - recursive normalization
    """
    if isinstance(obj, dict):
        return {k: canonicalize(obj[k]) for k in sorted(obj.keys())}
    if isinstance(obj, (list, tuple)):
        return [canonicalize(x) for x in obj]
    return obj


def canonical_json_bytes(obj: Any) -> bytes:
    """
    Deterministic JSON bytes.

    Returns:
        UTF-8 encoded JSON bytes (sorted keys, no whitespace)
    """
    canon = canonicalize(obj)
    s = json.dumps(canon, sort_keys=True, separators=(",", ":"), ensure_ascii=False)
    return s.encode("utf-8")


def strip_keys(obj: Any, keys: Iterable[str]) -> Any:
    """Return a copy of obj with the given keys removed at every nesting level."""
    drop = set(keys)
    if isinstance(obj, dict):
        return {k: strip_keys(v, drop) for k, v in obj.items() if k not in drop}
    if isinstance(obj, (list, tuple)):
        return [strip_keys(x, drop) for x in obj]
    return obj


def content_digest(obj: Any, ignore: Iterable[str] = ()) -> str:
    """SHA-256 of the canonical form of obj, ignoring the named keys."""
    return hashlib.sha256(canonical_json_bytes(strip_keys(obj, ignore))).hexdigest()
