"""In-memory store of cleaned place records keyed by identifier."""

from __future__ import annotations

from pathlib import Path
from typing import Iterable, Iterator

from placenames.common.errors import ContractError
from placenames.common.fs import read_json
from placenames.common.models import PlaceRecord


class RecordStore:
    """Owns every ``PlaceRecord``; other structures hold identifiers into it."""

    def __init__(self, records: Iterable[PlaceRecord] = ()) -> None:
        self._records: dict[int, PlaceRecord] = {}
        for record in records:
            self.add(record)

    def add(self, record: PlaceRecord) -> None:
        if record.place_id in self._records:
            raise ContractError(f"Duplicate place id in record store: {record.place_id}")
        self._records[record.place_id] = record

    def get(self, place_id: int) -> PlaceRecord:
        return self._records[place_id]

    def ids(self) -> list[int]:
        return sorted(self._records)

    def __contains__(self, place_id: object) -> bool:
        return place_id in self._records

    def __len__(self) -> int:
        return len(self._records)

    def __iter__(self) -> Iterator[PlaceRecord]:
        return iter(self._records.values())


def places_artifact_path(data_dir: Path) -> Path:
    return data_dir / "intermediate" / "places.json"


def load_record_store(data_dir: Path) -> RecordStore:
    path = places_artifact_path(data_dir)
    if not path.exists():
        raise ContractError(f"Missing ingest artifact: {path}")
    payload = read_json(path)
    try:
        return RecordStore(PlaceRecord.from_dict(row) for row in payload["rows"])
    except (KeyError, TypeError, ValueError) as exc:
        raise ContractError(f"Malformed ingest artifact: {path}") from exc
