"""
Attestation Gateway - Canonical Serialization

Canonical JSON serialization and SHA-256 identifiers used by the
reference ledger to derive schema and attestation ids.

SPDX-License-Identifier: AGPL-3.0-or-later
"""

import hashlib
import json
from dataclasses import asdict, is_dataclass
from enum import Enum
from typing import Any


def _serialize_value(value: Any) -> Any:
    """
    Convert a value to JSON-serializable format following canonical rules.

    - Bytes as 0x-prefixed lowercase hex
    - Integers kept exact (never floats)
    - Enums as their value
    """
    if value is None:
        return None

    if isinstance(value, (bytes, bytearray)):
        return "0x" + bytes(value).hex()

    if isinstance(value, Enum):
        return value.value

    if isinstance(value, (list, tuple)):
        return [_serialize_value(item) for item in value]

    if isinstance(value, dict):
        return {k: _serialize_value(v) for k, v in value.items()}

    if is_dataclass(value) and not isinstance(value, type):
        return _serialize_value(asdict(value))

    if isinstance(value, float):
        raise TypeError("Floats are not canonical; use integers")

    return value


def canonical_serialize(obj: Any) -> bytes:
    """
    Serialize a dataclass or dict to canonical JSON bytes.

    UTF-8, keys sorted recursively, no whitespace, no trailing newline.
    """
    if is_dataclass(obj) and not isinstance(obj, type):
        obj = asdict(obj)
    elif not isinstance(obj, dict):
        raise TypeError(f"Cannot serialize {type(obj)}")

    json_str = json.dumps(
        _serialize_value(obj),
        separators=(",", ":"),
        ensure_ascii=False,
        sort_keys=True,
    )
    return json_str.encode("utf-8")


def compute_hash(obj: Any) -> str:
    """SHA-256 of the canonical serialization, as lowercase hex."""
    return hashlib.sha256(canonical_serialize(obj)).hexdigest()


def compute_uid(obj: Any) -> str:
    """32-byte identifier for `obj`, 0x-prefixed."""
    return "0x" + compute_hash(obj)
