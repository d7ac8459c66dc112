"""Resolve same-name collisions inside an administrative unit.

Every record whose canonical name is shared with another record is visited in
ascending identifier order. When a same-named record exists in the same
(state, county) unit, the record either receives a "near ..." qualifier built
from up to ``max_qualifiers`` nearby, unambiguous and sufficiently different
place names, or it is excluded from the output. The qualifier places must lie
strictly closer than half the distance to the nearest same-named competitor so
the phrase cannot point at the competitor instead.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path

from rapidfuzz.distance import Levenshtein

from placenames.common.errors import ContractError
from placenames.common.fs import read_json, write_json
from placenames.common.geometry import haversine_km
from placenames.common.logging import log_event
from placenames.common.models import DisambiguationDecision, PlaceRecord
from placenames.pipeline.name_index import NameIndex
from placenames.pipeline.record_store import RecordStore, load_record_store
from placenames.pipeline.spatial_index import SpatialIndex

OUTCOME_UNIQUE_IN_UNIT = "unique_in_unit"
OUTCOME_QUALIFIED = "qualified"
OUTCOME_EXCLUDED = "excluded"


@dataclass(frozen=True)
class DisambiguationSettings:
    max_radius_km: float = 20.0
    similarity_divisor: float = 4.0
    max_qualifiers: int = 3
    near_prefix: str = "near"
    progress_every: int = 10000

    @classmethod
    def from_config(cls, cfg: dict) -> "DisambiguationSettings":
        return cls(
            max_radius_km=float(cfg["max_radius_km"]),
            similarity_divisor=float(cfg["similarity_divisor"]),
            max_qualifiers=int(cfg["max_qualifiers"]),
            near_prefix=str(cfg["near_prefix"]),
            progress_every=int(cfg.get("progress_every", 10000)),
        )


@dataclass
class DisambiguationResult:
    excluded: set[int] = field(default_factory=set)
    qualifiers: dict[int, str] = field(default_factory=dict)
    decisions: list[DisambiguationDecision] = field(default_factory=list)
    stats: dict[str, int] = field(default_factory=dict)

    def to_payload(self, run_id: str) -> dict:
        return {
            "run_id": run_id,
            "stats": dict(self.stats),
            "excluded": sorted(self.excluded),
            "qualifiers": {str(place_id): phrase for place_id, phrase in sorted(self.qualifiers.items())},
            "decisions": [decision.to_dict() for decision in self.decisions],
        }

    @classmethod
    def from_payload(cls, payload: dict) -> "DisambiguationResult":
        try:
            return cls(
                excluded={int(place_id) for place_id in payload["excluded"]},
                qualifiers={int(place_id): phrase for place_id, phrase in payload["qualifiers"].items()},
                stats=dict(payload.get("stats", {})),
            )
        except (KeyError, TypeError, ValueError) as exc:
            raise ContractError("Malformed disambiguation artifact") from exc


def too_similar(name: str, other: str, divisor: float) -> bool:
    """True when ``other`` is within ``len(name) / divisor`` edits of ``name``."""
    return Levenshtein.distance(name, other) <= len(name) / divisor


class Disambiguator:
    def __init__(
        self,
        store: RecordStore,
        settings: DisambiguationSettings | None = None,
        *,
        name_index: NameIndex | None = None,
        spatial_index: SpatialIndex | None = None,
    ) -> None:
        self.store = store
        self.settings = settings or DisambiguationSettings()
        self.name_index = name_index or NameIndex.build(store)
        self.spatial_index = spatial_index or SpatialIndex(store)
        self.excluded: set[int] = set()
        self.qualifiers: dict[int, str] = {}
        self.decisions: list[DisambiguationDecision] = []

    def same_unit_collisions(self, record: PlaceRecord) -> list[int]:
        return [
            other_id
            for other_id in self.name_index.lookup(record.name)
            if other_id != record.place_id
            and other_id not in self.excluded
            and self.store.get(other_id).unit_key == record.unit_key
        ]

    def qualifier_candidates(self, record: PlaceRecord, max_distance_km: float) -> list[tuple[int, float]]:
        candidates = []
        hits = self.spatial_index.within(record.lat, record.lon, max_distance_km, excluded=self.excluded)
        for place_id, distance in hits:
            if place_id == record.place_id or self.name_index.is_ambiguous(place_id):
                continue
            if too_similar(record.name, self.store.get(place_id).name, self.settings.similarity_divisor):
                continue
            candidates.append((place_id, distance))
        return sorted(candidates, key=lambda hit: (hit[1], hit[0]))

    def resolve(self, place_id: int) -> DisambiguationDecision | None:
        if place_id in self.excluded:
            return None
        record = self.store.get(place_id)

        collisions = self.same_unit_collisions(record)
        if not collisions:
            return DisambiguationDecision(place_id, OUTCOME_UNIQUE_IN_UNIT)

        nearest = min(
            haversine_km(record.lat, record.lon, other.lat, other.lon)
            for other in (self.store.get(other_id) for other_id in collisions)
        )
        max_distance = min(nearest / 2, self.settings.max_radius_km)

        chosen = self.qualifier_candidates(record, max_distance)[: self.settings.max_qualifiers]
        if not chosen:
            self.excluded.add(place_id)
            return DisambiguationDecision(place_id, OUTCOME_EXCLUDED, nearest, max_distance)

        qualifier_ids = tuple(qualifier_id for qualifier_id, _distance in chosen)
        names = ", ".join(self.store.get(qualifier_id).name for qualifier_id in qualifier_ids)
        self.qualifiers.setdefault(place_id, f"{self.settings.near_prefix} {names}")
        return DisambiguationDecision(
            place_id,
            OUTCOME_QUALIFIED,
            nearest,
            max_distance,
            qualifier_ids,
        )

    def run(self, logger: logging.Logger | None = None, run_id: str | None = None) -> DisambiguationResult:
        ambiguous = sorted(self.name_index.ambiguous_ids)
        counts = {OUTCOME_UNIQUE_IN_UNIT: 0, OUTCOME_QUALIFIED: 0, OUTCOME_EXCLUDED: 0}

        for processed, place_id in enumerate(ambiguous, start=1):
            decision = self.resolve(place_id)
            if decision is not None:
                self.decisions.append(decision)
                counts[decision.outcome] += 1
            if self.settings.progress_every and processed % self.settings.progress_every == 0:
                log_event(
                    logger,
                    f"disambiguated {processed}/{len(ambiguous)} ambiguous records",
                    run_id=run_id,
                    stage="disambiguate",
                    event="PROGRESS",
                    status="ok",
                    rows_in=processed,
                    excluded=len(self.excluded),
                )

        stats = {
            "records": len(self.store),
            "ambiguous": len(ambiguous),
            "unique_in_unit": counts[OUTCOME_UNIQUE_IN_UNIT],
            "qualified": counts[OUTCOME_QUALIFIED],
            "excluded": len(self.excluded),
            "kept": len(self.store) - len(self.excluded),
        }
        log_event(
            logger,
            f"excluded {stats['excluded']} of {stats['records']} records",
            run_id=run_id,
            stage="disambiguate",
            event="SUMMARY",
            status="ok",
            rows_in=stats["records"],
            rows_out=stats["kept"],
            excluded=stats["excluded"],
        )
        return DisambiguationResult(
            excluded=set(self.excluded),
            qualifiers=dict(self.qualifiers),
            decisions=list(self.decisions),
            stats=stats,
        )


def run_disambiguation(
    pipeline_config: dict,
    data_dir: Path,
    run_id: str,
    logger: logging.Logger | None = None,
) -> DisambiguationResult:
    store = load_record_store(data_dir)
    settings = DisambiguationSettings.from_config(pipeline_config["disambiguation"])
    result = Disambiguator(store, settings).run(logger=logger, run_id=run_id)
    write_json(data_dir / "intermediate" / "disambiguation.json", result.to_payload(run_id))
    return result


def load_disambiguation(data_dir: Path) -> DisambiguationResult:
    path = data_dir / "intermediate" / "disambiguation.json"
    if not path.exists():
        raise ContractError(f"Missing disambiguation artifact: {path}")
    return DisambiguationResult.from_payload(read_json(path))
