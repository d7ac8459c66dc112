"""Run report aggregation."""

from __future__ import annotations

from pathlib import Path

from placenames.common.fs import read_json, write_json


def write_run_summary(
    data_dir: Path,
    run_id: str,
    run_date: str,
    stage_reports: dict[str, dict],
) -> Path:
    ingest = stage_reports.get("ingest")
    if ingest is None:
        places_path = data_dir / "intermediate" / "places.json"
        if places_path.exists():
            places = read_json(places_path)
            ingest = {key: places.get(key) for key in ("raw_row_count", "record_count", "dropped")}

    disambiguation = stage_reports.get("disambiguate")
    if disambiguation is None:
        disambiguation_path = data_dir / "intermediate" / "disambiguation.json"
        if disambiguation_path.exists():
            disambiguation = {"stats": read_json(disambiguation_path).get("stats", {})}

    stats = (disambiguation or {}).get("stats", {})
    export = stage_reports.get("export") or {}
    warnings: list[str] = []
    if export.get("unknown_state_codes"):
        warnings.append("UNKNOWN_STATE_CODES")
    if stage_reports.get("fetch", {}).get("status") == "error":
        warnings.append("FETCH_FAILED_USING_EXISTING_INPUT")

    payload = {
        "run_id": run_id,
        "run_date": run_date,
        "status": "partial" if warnings else "success",
        "ingest": {
            "raw_rows": (ingest or {}).get("raw_row_count", 0),
            "records": (ingest or {}).get("record_count", 0),
            "dropped": (ingest or {}).get("dropped", {}),
        },
        "disambiguation": {
            "records": stats.get("records", 0),
            "ambiguous": stats.get("ambiguous", 0),
            "unique_in_unit": stats.get("unique_in_unit", 0),
            "qualified": stats.get("qualified", 0),
            "excluded": stats.get("excluded", 0),
            "kept": stats.get("kept", 0),
        },
        "export": {key: value for key, value in export.items() if key not in {"run_id", "database_path"}},
        "warnings": warnings,
    }
    summary_path = data_dir / "out" / "reports" / "run_summary.json"
    write_json(summary_path, payload)
    return summary_path
