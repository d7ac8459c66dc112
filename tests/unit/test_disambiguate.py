import math
import random

import pytest

from placenames.common.constants import EARTH_RADIUS_KM
from placenames.common.geometry import haversine_km
from placenames.common.models import PlaceRecord
from placenames.pipeline.disambiguate import (
    OUTCOME_EXCLUDED,
    OUTCOME_QUALIFIED,
    OUTCOME_UNIQUE_IN_UNIT,
    DisambiguationResult,
    DisambiguationSettings,
    Disambiguator,
    too_similar,
)
from placenames.pipeline.record_store import RecordStore


def _offset(lat: float, lon: float, north_km: float = 0.0, east_km: float = 0.0) -> tuple[float, float]:
    new_lat = lat + math.degrees(north_km / EARTH_RADIUS_KM)
    new_lon = lon + math.degrees(east_km / (EARTH_RADIUS_KM * math.cos(math.radians(lat))))
    return new_lat, new_lon


def _place(place_id, name, county, lat, lon, state="PA"):
    return PlaceRecord(place_id=place_id, name=name, state=state, county=county, lat=lat, lon=lon)


def _franklin_store(first_id=1, second_id=2) -> RecordStore:
    second = _offset(40.0, -80.0, north_km=3.0)
    town = _offset(40.0, -80.0, east_km=-1.0)
    return RecordStore(
        [
            _place(first_id, "Franklin", "Washington", 40.0, -80.0),
            _place(second_id, "Franklin", "Washington", *second),
            _place(3, "Franklin", "Beaver", 40.5, -80.5),
            _place(4, "Franklintown", "Washington", *town),
        ]
    )


def _decisions_by_id(result: DisambiguationResult) -> dict:
    return {decision.place_id: decision for decision in result.decisions}


def test_franklin_scenario_qualifies_one_and_excludes_the_other():
    result = Disambiguator(_franklin_store()).run()
    decisions = _decisions_by_id(result)

    assert result.qualifiers == {1: "near Franklintown"}
    assert result.excluded == {2}
    assert decisions[1].outcome == OUTCOME_QUALIFIED
    assert decisions[1].nearest_collision_km == pytest.approx(3.0, abs=1e-6)
    assert decisions[1].max_distance_km == pytest.approx(1.5, abs=1e-6)
    assert decisions[1].qualifier_ids == (4,)
    assert decisions[2].outcome == OUTCOME_EXCLUDED
    assert decisions[2].max_distance_km == pytest.approx(1.5, abs=1e-6)
    assert decisions[3].outcome == OUTCOME_UNIQUE_IN_UNIT
    assert 3 not in result.qualifiers
    assert 4 not in decisions
    assert result.stats == {
        "records": 4,
        "ambiguous": 3,
        "unique_in_unit": 1,
        "qualified": 1,
        "excluded": 1,
        "kept": 3,
    }


def test_processing_order_follows_identifiers():
    # The far Franklin is processed first, excluded, and no longer collides with the near one.
    result = Disambiguator(_franklin_store(first_id=5, second_id=2)).run()
    decisions = _decisions_by_id(result)

    assert result.excluded == {2}
    assert decisions[5].outcome == OUTCOME_UNIQUE_IN_UNIT
    assert result.qualifiers == {}


def test_runs_are_deterministic():
    first = Disambiguator(_random_store(seed=3)).run()
    second = Disambiguator(_random_store(seed=3)).run()

    assert first.excluded == second.excluded
    assert first.qualifiers == second.qualifiers
    assert first.decisions == second.decisions


def test_near_duplicate_spelling_never_disambiguates():
    assert too_similar("Springfield", "Springfeld", 4)
    springfeld = _offset(39.8, -89.65, east_km=1.0)
    store = RecordStore(
        [
            _place(1, "Springfield", "Sangamon", 39.8, -89.65, state="IL"),
            _place(2, "Springfield", "Sangamon", *_offset(39.8, -89.65, north_km=10.0), state="IL"),
            _place(3, "Springfeld", "Sangamon", *springfeld, state="IL"),
        ]
    )

    result = Disambiguator(store).run()

    assert 1 in result.excluded
    assert all("Springfeld" not in phrase for phrase in result.qualifiers.values())


def test_qualifier_lists_at_most_three_nearest_first():
    base = (45.0, -93.0)
    store = RecordStore(
        [
            _place(1, "Lakeview", "Hennepin", *base, state="MN"),
            _place(2, "Lakeview", "Hennepin", *_offset(*base, north_km=30.0), state="MN"),
            _place(10, "Osseo", "Hennepin", *_offset(*base, east_km=4.0), state="MN"),
            _place(11, "Dayton", "Hennepin", *_offset(*base, east_km=1.0), state="MN"),
            _place(12, "Rogers", "Hennepin", *_offset(*base, east_km=-2.0), state="MN"),
            _place(13, "Hanover", "Hennepin", *_offset(*base, north_km=3.0), state="MN"),
        ]
    )

    result = Disambiguator(store).run()

    assert result.qualifiers[1] == "near Dayton, Rogers, Hanover"
    assert _decisions_by_id(result)[1].qualifier_ids == (11, 12, 13)


def test_radius_is_capped_and_prefix_configurable():
    base = (45.0, -93.0)
    store = RecordStore(
        [
            _place(1, "Lakeview", "Hennepin", *base, state="MN"),
            _place(2, "Lakeview", "Hennepin", *_offset(*base, north_km=100.0), state="MN"),
            _place(3, "Osseo", "Hennepin", *_offset(*base, east_km=15.0), state="MN"),
        ]
    )
    settings = DisambiguationSettings(max_radius_km=10.0, near_prefix="by")

    result = Disambiguator(store, settings).run()
    decisions = _decisions_by_id(result)

    assert decisions[1].max_distance_km == 10.0
    assert decisions[1].outcome == OUTCOME_EXCLUDED
    assert Disambiguator(store, DisambiguationSettings(near_prefix="by")).run().qualifiers[1] == "by Osseo"


def test_ambiguous_places_are_not_used_as_qualifiers():
    base = (41.0, -75.0)
    store = RecordStore(
        [
            _place(1, "Summit", "Wayne", *base),
            _place(2, "Summit", "Wayne", *_offset(*base, north_km=8.0)),
            _place(3, "Hamlin", "Wayne", *_offset(*base, east_km=1.0)),
            _place(4, "Hamlin", "Pike", 41.3, -75.1),
        ]
    )

    result = Disambiguator(store).run()

    assert 1 in result.excluded
    assert all("Hamlin" not in phrase for phrase in result.qualifiers.values())


def test_same_name_at_identical_coordinates_is_excluded():
    store = RecordStore(
        [
            _place(1, "Greenwood", "Lane", 44.0, -123.0, state="OR"),
            _place(2, "Greenwood", "Lane", 44.0, -123.0, state="OR"),
            _place(3, "Eugene", "Lane", 44.001, -123.0, state="OR"),
        ]
    )

    result = Disambiguator(store).run()

    assert 1 in result.excluded
    assert _decisions_by_id(result)[1].max_distance_km == 0.0


def test_settings_from_config():
    settings = DisambiguationSettings.from_config(
        {"max_radius_km": 12, "similarity_divisor": 5, "max_qualifiers": 2, "near_prefix": "near"}
    )

    assert settings == DisambiguationSettings(
        max_radius_km=12.0, similarity_divisor=5.0, max_qualifiers=2, near_prefix="near", progress_every=10000
    )


def test_result_payload_round_trip_keeps_integer_keys():
    result = Disambiguator(_franklin_store()).run()

    restored = DisambiguationResult.from_payload(result.to_payload("run-x"))

    assert restored.qualifiers == {1: "near Franklintown"}
    assert restored.excluded == {2}
    assert restored.stats == result.stats


NAMES = ["Oak Grove", "Pine Hill", "Cedar", "Mapleton", "Fairview"]


def _random_store(seed: int) -> RecordStore:
    rng = random.Random(seed)
    records = []
    place_id = 1
    for _ in range(150):
        records.append(
            _place(place_id, rng.choice(NAMES), rng.choice(["Adams", "Brown"]), rng.uniform(40.0, 40.4), rng.uniform(-80.4, -80.0))
        )
        place_id += 1
    for idx in range(300):
        records.append(
            _place(place_id, f"Hamlet {idx:04d}", rng.choice(["Adams", "Brown"]), rng.uniform(40.0, 40.4), rng.uniform(-80.4, -80.0))
        )
        place_id += 1
    return RecordStore(records)


@pytest.mark.parametrize("seed", [1, 2, 5])
def test_qualifiers_respect_radius_and_self_exclusion(seed):
    store = _random_store(seed)
    disambiguator = Disambiguator(store)
    result = disambiguator.run()

    assert result.qualifiers
    for decision in result.decisions:
        if decision.outcome == OUTCOME_UNIQUE_IN_UNIT:
            continue
        assert decision.max_distance_km <= 20.0
        assert decision.max_distance_km <= decision.nearest_collision_km / 2
        record = store.get(decision.place_id)
        for qualifier_id in decision.qualifier_ids:
            other = store.get(qualifier_id)
            assert qualifier_id != decision.place_id
            assert not disambiguator.name_index.is_ambiguous(qualifier_id)
            assert haversine_km(record.lat, record.lon, other.lat, other.lon) < decision.max_distance_km


@pytest.mark.parametrize("seed", [1, 2, 5])
def test_exclusion_is_monotonic(seed):
    store = _random_store(seed)
    disambiguator = Disambiguator(store)
    result = disambiguator.run()

    excluded_so_far: set[int] = set()
    for decision in result.decisions:
        assert decision.place_id not in excluded_so_far
        assert not excluded_so_far.intersection(decision.qualifier_ids)
        if decision.outcome == OUTCOME_UNIQUE_IN_UNIT:
            record = store.get(decision.place_id)
            for other_id in disambiguator.name_index.lookup(record.name):
                if other_id != decision.place_id and store.get(other_id).unit_key == record.unit_key:
                    assert other_id in excluded_so_far
        if decision.outcome == OUTCOME_EXCLUDED:
            excluded_so_far.add(decision.place_id)
    assert excluded_so_far == result.excluded
    assert result.stats["excluded"] == len(result.excluded)
    assert result.stats["kept"] == len(store) - len(result.excluded)
