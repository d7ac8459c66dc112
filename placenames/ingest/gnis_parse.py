"""Pipe-delimited gazetteer extract parsing into the record store artifact."""

from __future__ import annotations

import csv
import re
from collections import Counter
from pathlib import Path
from typing import Iterable, Iterator

from pyproj import CRS, Transformer
from pyproj.exceptions import CRSError

from placenames.common.errors import ConfigError, StageError
from placenames.common.fs import write_json
from placenames.common.geometry import valid_lat_lon
from placenames.common.models import PlaceRecord
from placenames.pipeline.record_store import places_artifact_path

WGS84_EPSG = 4326

_HISTORICAL_RE = re.compile(r"\s*\(historical\)", re.IGNORECASE)
_SUBDIVISION_RE = re.compile(r"\s+Subdivision$", re.IGNORECASE)


def clean_name(raw: str | None) -> str:
    if not raw:
        return ""
    name = _HISTORICAL_RE.sub("", raw)
    name = " ".join(name.split())
    return _SUBDIVISION_RE.sub("", name)


def _safe_float(value: str | None) -> float | None:
    if value is None or not value.strip():
        return None
    try:
        return float(value)
    except ValueError:
        return None


def _safe_int(value: str | None) -> int | None:
    if value is None or not value.strip():
        return None
    try:
        return int(value)
    except ValueError:
        return None


def resolve_input_path(pipeline_config: dict, data_dir: Path) -> Path:
    path = Path(pipeline_config["source"]["input_path"])
    if path.is_absolute():
        return path
    return data_dir / path


def build_transformer(source_epsg: int) -> Transformer | None:
    if int(source_epsg) == WGS84_EPSG:
        return None
    try:
        return Transformer.from_crs(CRS.from_epsg(int(source_epsg)), CRS.from_epsg(WGS84_EPSG), always_xy=True)
    except CRSError as exc:
        raise ConfigError(f"Unsupported source EPSG: {source_epsg}") from exc


def iter_extract_rows(path: Path, *, delimiter: str, encoding: str) -> Iterator[dict]:
    if not path.exists():
        raise StageError(f"Missing gazetteer extract: {path}")
    with path.open("r", encoding=encoding, newline="") as f:
        reader = csv.DictReader(f, delimiter=delimiter, quoting=csv.QUOTE_NONE)
        yield from reader


def parse_records(
    rows: Iterable[dict],
    fields: dict,
    *,
    feature_classes: Iterable[str],
    transformer: Transformer | None = None,
) -> tuple[list[PlaceRecord], Counter]:
    """Turn raw extract rows into place records, counting every dropped row by reason."""
    wanted_classes = set(feature_classes)
    drops: Counter = Counter()
    seen: set[int] = set()
    records: list[PlaceRecord] = []

    for row in rows:
        if (row.get(fields["feature_class"]) or "").strip() not in wanted_classes:
            drops["feature_class"] += 1
            continue

        place_id = _safe_int(row.get(fields["id"]))
        if place_id is None:
            drops["invalid_id"] += 1
            continue
        if place_id in seen:
            drops["duplicate_id"] += 1
            continue

        name = clean_name(row.get(fields["name"]))
        state = (row.get(fields["state"]) or "").strip().upper()
        county = " ".join((row.get(fields["county"]) or "").split())
        if not name or not state or not county:
            drops["missing_name_or_unit"] += 1
            continue

        lat = _safe_float(row.get(fields["lat"]))
        lon = _safe_float(row.get(fields["lon"]))
        # GNIS writes 0/0 for unknown primary coordinates.
        if lat is None or lon is None or (lat == 0 and lon == 0):
            drops["missing_coordinates"] += 1
            continue
        if transformer is not None:
            lon, lat = transformer.transform(lon, lat)
        if not valid_lat_lon(lat, lon):
            drops["invalid_coordinates"] += 1
            continue

        seen.add(place_id)
        records.append(PlaceRecord(place_id, name, state, county, lat, lon))

    return records, drops


def run_ingest(pipeline_config: dict, data_dir: Path, run_id: str) -> dict:
    source = pipeline_config["source"]
    input_path = resolve_input_path(pipeline_config, data_dir)
    rows = iter_extract_rows(
        input_path,
        delimiter=source["delimiter"],
        encoding=source.get("encoding", "utf-8-sig"),
    )
    records, drops = parse_records(
        rows,
        pipeline_config["fields"],
        feature_classes=pipeline_config["filters"]["feature_classes"],
        transformer=build_transformer(source["source_epsg"]),
    )

    payload = {
        "run_id": run_id,
        "input_path": str(input_path),
        "raw_row_count": len(records) + sum(drops.values()),
        "record_count": len(records),
        "dropped": dict(sorted(drops.items())),
        "rows": [record.to_dict() for record in sorted(records, key=lambda record: record.place_id)],
    }
    write_json(places_artifact_path(data_dir), payload)
    return payload
