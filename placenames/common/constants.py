"""Application constants."""

USER_AGENT = "gnis-placenames/0.3 (+gazetteer cleanup; contact: configured-email)"
STAGES = (
    "fetch",
    "ingest",
    "disambiguate",
    "export",
)
EXIT_SUCCESS = 0
EXIT_PARTIAL = 10
EXIT_HARD_FAIL = 20
EARTH_RADIUS_KM = 6371.0
JSON_LOG_FIELDS = (
    "timestamp",
    "run_id",
    "stage",
    "event",
    "status",
    "attempt",
    "duration_ms",
    "rows_in",
    "rows_out",
    "excluded",
    "error_code",
    "message",
)
