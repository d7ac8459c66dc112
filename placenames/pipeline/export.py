"""Finalised feature and name rows for kept places."""

from __future__ import annotations

from pathlib import Path
from typing import Iterator

from placenames.common.fs import write_csv
from placenames.common.models import PlaceRecord
from placenames.pipeline.disambiguate import DisambiguationResult, load_disambiguation
from placenames.pipeline.record_store import RecordStore, load_record_store
from placenames.pipeline.sink import FEATURE_COLUMNS, NAME_COLUMNS, write_sqlite


def render_in_qualifier(record: PlaceRecord, export_config: dict, states_config: dict) -> str:
    unit_word = states_config.get("unit_words", {}).get(record.state, export_config.get("default_unit_word", "County"))
    return export_config["in_template"].format(county=record.county, unit_word=unit_word).strip()


def iter_export_rows(
    store: RecordStore,
    result: DisambiguationResult,
    export_config: dict,
    states_config: dict,
) -> Iterator[tuple[dict, dict]]:
    state_names = states_config["states"]
    feature_offset = int(export_config["feature_id_offset"])
    name_offset = int(export_config["name_id_offset"])

    for place_id in store.ids():
        if place_id in result.excluded:
            continue
        record = store.get(place_id)
        feature_id = place_id + feature_offset
        feature = {
            "feature_id": feature_id,
            "country_code": export_config["country_code"],
            "state": state_names.get(record.state, record.state),
            "lat": record.lat,
            "lon": record.lon,
            "in_qualifier": render_in_qualifier(record, export_config, states_config),
            "near_qualifier": result.qualifiers.get(place_id),
        }
        name = {
            "feature_id": feature_id,
            "name_id": place_id + name_offset,
            "is_primary": 1,
            "name": record.name,
            "name_type": int(export_config["name_type"]),
        }
        yield feature, name


def _staging_path(path: Path) -> Path:
    return path.with_name(path.name + ".tmp")


def _csv_row(row: dict) -> dict:
    return {key: "" if value is None else value for key, value in row.items()}


def run_export(pipeline_config: dict, states_config: dict, data_dir: Path, run_id: str) -> dict:
    store = load_record_store(data_dir)
    result = load_disambiguation(data_dir)

    rows = list(iter_export_rows(store, result, pipeline_config["export"], states_config))
    features = [feature for feature, _name in rows]
    names = [name for _feature, name in rows]

    output = pipeline_config["output"]
    out_dir = data_dir / "out"
    csv_targets = {
        out_dir / output["features_filename"]: (FEATURE_COLUMNS, features),
        out_dir / output["names_filename"]: (NAME_COLUMNS, names),
    }
    staged = {path: _staging_path(path) for path in csv_targets}
    try:
        for path, (columns, csv_rows) in csv_targets.items():
            write_csv(staged[path], list(columns), (_csv_row(row) for row in csv_rows))
        db_path = write_sqlite(out_dir / output["database_filename"], features, names)
    except Exception:
        for tmp_path in staged.values():
            tmp_path.unlink(missing_ok=True)
        raise
    # The CSVs only become visible once the database has been committed.
    for path, tmp_path in staged.items():
        tmp_path.replace(path)

    exported_states = {store.get(place_id).state for place_id in store.ids() if place_id not in result.excluded}
    unknown_states = sorted(exported_states - set(states_config["states"]))
    return {
        "run_id": run_id,
        "records": len(store),
        "exported": len(features),
        "with_near_qualifier": sum(1 for row in features if row["near_qualifier"]),
        "unknown_state_codes": unknown_states,
        "database_path": str(db_path),
    }
