"""Latitude-sorted point index for radius queries.

Identifiers are sorted by latitude once at construction. A radius query
brackets the candidate latitude band with two independent binary searches and
then applies the exact great-circle distance, because the band says nothing
about longitude. Excluded identifiers are filtered while reading, so the
sorted order is never disturbed after construction.
"""

from __future__ import annotations

from bisect import bisect_left, bisect_right
from typing import Collection

from placenames.common.geometry import haversine_km, lat_half_width_deg
from placenames.pipeline.record_store import RecordStore


class SpatialIndex:
    def __init__(self, store: RecordStore) -> None:
        self._store = store
        ordered = sorted(store, key=lambda record: (record.lat, record.place_id))
        self._ids = [record.place_id for record in ordered]
        self._lats = [record.lat for record in ordered]

    def __len__(self) -> int:
        return len(self._ids)

    def lower_bound(self, min_lat: float) -> int:
        """Lowest position whose latitude is >= ``min_lat`` (``len`` when none)."""
        return bisect_left(self._lats, min_lat)

    def upper_bound(self, max_lat: float) -> int:
        """Highest position whose latitude is <= ``max_lat`` (-1 when none)."""
        return bisect_right(self._lats, max_lat) - 1

    def within(
        self,
        lat: float,
        lon: float,
        radius_km: float,
        excluded: Collection[int] = (),
    ) -> list[tuple[int, float]]:
        if radius_km <= 0 or not self._ids:
            return []

        half_width = lat_half_width_deg(radius_km)
        low = self.lower_bound(lat - half_width)
        high = self.upper_bound(lat + half_width)

        hits: list[tuple[int, float]] = []
        for position in range(low, high + 1):
            place_id = self._ids[position]
            if place_id in excluded:
                continue
            record = self._store.get(place_id)
            distance = haversine_km(lat, lon, record.lat, record.lon)
            if distance < radius_km:
                hits.append((place_id, distance))
        return hits
