"""Canonical-name grouping and the ambiguity set."""

from __future__ import annotations

import re
from collections import defaultdict

from placenames.pipeline.record_store import RecordStore

_PUNCTUATION_RE = re.compile(r"[^\w\s]|_")


def canonical_name_key(name: str) -> str:
    stripped = _PUNCTUATION_RE.sub("", name)
    return " ".join(stripped.casefold().split())


class NameIndex:
    def __init__(self, buckets: dict[str, list[int]]) -> None:
        self._buckets = buckets
        ambiguous: set[int] = set()
        for ids in buckets.values():
            if len(ids) >= 2:
                ambiguous.update(ids)
        self.ambiguous_ids = frozenset(ambiguous)

    @classmethod
    def build(cls, store: RecordStore) -> "NameIndex":
        buckets: dict[str, list[int]] = defaultdict(list)
        for record in store:
            buckets[canonical_name_key(record.name)].append(record.place_id)
        return cls(dict(buckets))

    def lookup(self, name: str) -> list[int]:
        """Identifiers sharing the canonical key of ``name``, in insertion order."""
        return list(self._buckets.get(canonical_name_key(name), ()))

    def is_ambiguous(self, place_id: int) -> bool:
        return place_id in self.ambiguous_ids

    def __len__(self) -> int:
        return len(self._buckets)
