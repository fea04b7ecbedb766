"""Deterministic content fingerprints for duplicate detection.

32-bit FNV-1a over a normalized, order-independent serialization of a
lesson. Not cryptographic: with 32 bits of output, collisions between
genuinely different lessons are possible at scale and are accepted as a
known limitation. Use only for duplicate detection.
"""

import json
import re
from collections.abc import Iterable, Mapping
from typing import Any

from fluentbee.services.similarity import tokenize

FNV_OFFSET_BASIS = 0x811C9DC5
FNV_PRIME = 0x01000193

_WHITESPACE = re.compile(r"\s+")


def fnv1a_32(text: str) -> str:
    """FNV-1a hash of the UTF-8 bytes of ``text`` as 8 lowercase hex digits."""
    h = FNV_OFFSET_BASIS
    for byte in text.encode("utf-8"):
        h ^= byte
        h = (h * FNV_PRIME) & 0xFFFFFFFF
    return f"{h:08x}"


def normalize_field(value: Any) -> str:
    """Lowercase, trim and collapse internal whitespace."""
    if value is None:
        return ""
    return _WHITESPACE.sub(" ", str(value).lower().strip())


def _item_text(item: Any) -> str:
    if isinstance(item, Mapping):
        kind = item.get("kind") or item.get("type")
        if kind == "text":
            return item.get("content") or item.get("term") or ""
        return item.get("term") or item.get("en") or ""
    return getattr(item, "term", "") or ""


def lesson_fields(
    title: str | None,
    items: Iterable[Any],
    level_tag: str | None = None,
    topic: str | None = None,
) -> list[str]:
    """Salient normalized strings of a lesson, sorted."""
    raw = [title, *(_item_text(it) for it in items), level_tag, topic]
    fields = [normalize_field(v) for v in raw]
    return sorted(f for f in fields if f)


def lesson_fingerprint(
    title: str | None,
    items: Iterable[Any],
    level_tag: str | None = None,
    topic: str | None = None,
) -> str:
    """Fingerprint a lesson; independent of item order.

    Items may be mappings (``term``/``en``, or ``content`` for text items)
    or objects with a ``term`` attribute.
    """
    fields = lesson_fields(title, items, level_tag, topic)
    serialized = json.dumps(fields, ensure_ascii=False, separators=(",", ":"))
    return fnv1a_32(serialized)


def sentence_fingerprint(text: str) -> str:
    """Exact-duplicate key for a single sentence after similarity normalization."""
    return fnv1a_32(" ".join(tokenize(text)))
