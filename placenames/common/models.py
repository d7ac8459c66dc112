"""Data models used across the pipeline."""

from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Any


@dataclass(frozen=True)
class PlaceRecord:
    place_id: int
    name: str
    state: str
    county: str
    lat: float
    lon: float

    @property
    def unit_key(self) -> tuple[str, str]:
        return self.state, self.county

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> "PlaceRecord":
        return cls(
            place_id=int(payload["place_id"]),
            name=str(payload["name"]),
            state=str(payload["state"]),
            county=str(payload["county"]),
            lat=float(payload["lat"]),
            lon=float(payload["lon"]),
        )


@dataclass(frozen=True)
class DisambiguationDecision:
    place_id: int
    outcome: str
    nearest_collision_km: float | None = None
    max_distance_km: float | None = None
    qualifier_ids: tuple[int, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        payload = asdict(self)
        payload["qualifier_ids"] = list(self.qualifier_ids)
        return payload
