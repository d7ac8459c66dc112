"""Minimal strict schemas for YAML config validation."""

from __future__ import annotations

from placenames.common.errors import ConfigError

PIPELINE_SECTIONS = {"source", "fields", "filters", "disambiguation", "export", "output"}
FIELD_KEYS = {"id", "name", "feature_class", "state", "county", "lat", "lon"}


def _assert_mapping(obj, ctx: str) -> dict:
    if not isinstance(obj, dict):
        raise ConfigError(f"{ctx} must be a mapping")
    return obj


def _assert_required_keys(obj: dict, required: set[str], ctx: str) -> None:
    missing = required - set(obj)
    if missing:
        missing_str = ", ".join(sorted(missing))
        raise ConfigError(f"Missing keys in {ctx}: {missing_str}")


def _assert_no_unknown_keys(obj: dict, known: set[str], ctx: str, allow_unknown: bool) -> None:
    if allow_unknown:
        return
    unknown = set(obj) - known
    if unknown:
        unknown_str = ", ".join(sorted(unknown))
        raise ConfigError(f"Unknown keys in {ctx}: {unknown_str}")


def _assert_positive(value, ctx: str) -> None:
    if isinstance(value, bool) or not isinstance(value, (int, float)) or value <= 0:
        raise ConfigError(f"{ctx} must be a positive number, got {value!r}")


def validate_pipeline_config(cfg: dict, *, allow_unknown: bool = False) -> dict:
    _assert_mapping(cfg, "pipeline config")
    _assert_required_keys(cfg, PIPELINE_SECTIONS, "pipeline config")
    _assert_no_unknown_keys(cfg, PIPELINE_SECTIONS, "pipeline config", allow_unknown)

    source = _assert_mapping(cfg["source"], "source")
    _assert_required_keys(source, {"input_path", "delimiter", "source_epsg"}, "source")

    fields = _assert_mapping(cfg["fields"], "fields")
    _assert_required_keys(fields, FIELD_KEYS, "fields")

    filters = _assert_mapping(cfg["filters"], "filters")
    _assert_required_keys(filters, {"feature_classes"}, "filters")
    if not isinstance(filters["feature_classes"], list) or not filters["feature_classes"]:
        raise ConfigError("filters.feature_classes must be a non-empty list")

    disambiguation = _assert_mapping(cfg["disambiguation"], "disambiguation")
    _assert_required_keys(
        disambiguation,
        {"max_radius_km", "similarity_divisor", "max_qualifiers", "near_prefix"},
        "disambiguation",
    )
    _assert_positive(disambiguation["max_radius_km"], "disambiguation.max_radius_km")
    _assert_positive(disambiguation["similarity_divisor"], "disambiguation.similarity_divisor")
    if not isinstance(disambiguation["max_qualifiers"], int) or disambiguation["max_qualifiers"] < 1:
        raise ConfigError("disambiguation.max_qualifiers must be an integer >= 1")

    export = _assert_mapping(cfg["export"], "export")
    _assert_required_keys(
        export,
        {"country_code", "feature_id_offset", "name_id_offset", "name_type", "in_template"},
        "export",
    )
    if "{county}" not in export["in_template"]:
        raise ConfigError("export.in_template must contain a {county} placeholder")

    output = _assert_mapping(cfg["output"], "output")
    _assert_required_keys(
        output,
        {"features_filename", "names_filename", "database_filename"},
        "output",
    )
    return cfg


def validate_states_config(cfg: dict) -> dict:
    _assert_mapping(cfg, "states config")
    _assert_required_keys(cfg, {"states"}, "states config")
    states = _assert_mapping(cfg["states"], "states")
    if not states:
        raise ConfigError("states.states must be a non-empty mapping")
    if cfg.get("unit_words") is None:
        cfg["unit_words"] = {}
    _assert_mapping(cfg["unit_words"], "states.unit_words")
    return cfg
