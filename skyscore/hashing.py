"""Canonical JSON hashing shared by controls, audio and explanations."""

from __future__ import annotations

import copy
import hashlib
import json
from collections.abc import Mapping
from typing import Any

CONTROL_HASH_LENGTH = 16
_INT32_MASK = 0xFFFFFFFF

# Fields that legitimately differ between otherwise identical runs.
_VOLATILE_FIELDS: tuple[tuple[str, str], ...] = (
    ("artifacts", "timestamp"),
    ("audio", "latency_ms"),
)


def _normalize_value(value: Any) -> Any:
    """Recursively normalize values for stable JSON serialization."""
    match value:
        case Mapping():
            return {str(key): _normalize_value(value[key]) for key in sorted(value)}
        case list() | tuple():
            return [_normalize_value(item) for item in value]
        case _:
            return value


def canonical_json(payload: Mapping[str, Any]) -> str:
    return json.dumps(
        _normalize_value(payload),
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=False,
    )


def sha256_hex(data: bytes | str) -> str:
    raw = data.encode("utf-8") if isinstance(data, str) else data
    return hashlib.sha256(raw).hexdigest()


def build_payload_hash(payload: Mapping[str, Any]) -> str:
    return sha256_hex(canonical_json(payload))


def build_control_hash(payload: Mapping[str, Any]) -> str:
    return build_payload_hash(payload)[:CONTROL_HASH_LENGTH]


def string_hash(text: str) -> int:
    """Non-negative 32-bit polynomial hash (``h = h * 31 + code point``).

    Used for deterministic template selection, so the value must never depend on
    interpreter hash randomisation.
    """
    value = 0
    for char in text:
        value = (value * 31 + ord(char)) & _INT32_MASK
    if value >= 0x80000000:
        value -= 0x100000000
    return abs(value)


def normalize_response(response: Mapping[str, Any]) -> dict[str, Any]:
    """Blank the wall-clock fields so two runs can be compared byte for byte."""
    normalized = copy.deepcopy(dict(response))
    for section, field in _VOLATILE_FIELDS:
        block = normalized.get(section)
        if isinstance(block, dict) and field in block:
            block[field] = None
    return normalized


def hash_normalized_response(response: Mapping[str, Any]) -> str:
    return build_payload_hash(normalize_response(response))
