"""CLI entrypoint for the gazetteer place-name disambiguation pipeline."""

from __future__ import annotations

import argparse
import logging
import sys
import time
from pathlib import Path

from placenames.common.config_loader import ConfigBundle, load_all_configs
from placenames.common.constants import EXIT_HARD_FAIL, EXIT_PARTIAL, EXIT_SUCCESS, STAGES
from placenames.common.errors import PipelineError
from placenames.common.logging import build_logger, close_logger, log_event
from placenames.common.time_utils import generate_run_id, parse_run_date
from placenames.ingest.fetch import run_fetch
from placenames.ingest.gnis_parse import resolve_input_path, run_ingest
from placenames.pipeline.disambiguate import run_disambiguation
from placenames.pipeline.export import run_export
from placenames.pipeline.reports import write_run_summary


def parse_args(argv: list[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("command", choices=[*STAGES, "all"])
    parser.add_argument("--run-date", default=None)
    parser.add_argument("--run-id", default=None)
    parser.add_argument("--config-dir", default="./config")
    parser.add_argument("--overlay-config-dir", default=None)
    parser.add_argument("--data-dir", default="./data")
    parser.add_argument("--log-level", default="INFO", choices=["DEBUG", "INFO", "WARN", "ERROR"])
    parser.add_argument("--strict", action="store_true")
    return parser.parse_args(argv)


def execute_stage(
    stage: str,
    bundle: ConfigBundle,
    data_dir: Path,
    run_id: str,
    logger: logging.Logger,
) -> dict:
    if stage == "fetch":
        return run_fetch(bundle.pipeline, data_dir, run_id)
    if stage == "ingest":
        payload = run_ingest(bundle.pipeline, data_dir, run_id)
        return {key: value for key, value in payload.items() if key != "rows"}
    if stage == "disambiguate":
        result = run_disambiguation(bundle.pipeline, data_dir, run_id, logger=logger)
        return {"stats": result.stats}
    if stage == "export":
        return run_export(bundle.pipeline, bundle.states, data_dir, run_id)
    raise ValueError(f"Unknown stage: {stage}")


def _rows_out(stage: str, report: dict) -> int | None:
    if stage == "ingest":
        return report.get("record_count")
    if stage == "disambiguate":
        return report["stats"].get("kept")
    if stage == "export":
        return report.get("exported")
    return None


def run_command(args: argparse.Namespace) -> int:
    run_id = args.run_id or generate_run_id()
    run_date = parse_run_date(args.run_date)
    config_dir = Path(args.config_dir)
    overlay_config_dir = Path(args.overlay_config_dir) if args.overlay_config_dir else None
    data_dir = Path(args.data_dir)

    logger = build_logger(run_id, data_dir=data_dir, level=args.log_level)
    try:
        return _run_stages(args, logger, run_id, run_date, config_dir, overlay_config_dir, data_dir)
    finally:
        close_logger(logger)


def _run_stages(
    args: argparse.Namespace,
    logger: logging.Logger,
    run_id: str,
    run_date: str,
    config_dir: Path,
    overlay_config_dir: Path | None,
    data_dir: Path,
) -> int:
    try:
        bundle = load_all_configs(config_dir, overlay_config_dir=overlay_config_dir)
    except PipelineError as exc:
        log_event(logger, str(exc), run_id=run_id, event="STAGE_FAIL", status="error", error_code=exc.error_code)
        return EXIT_HARD_FAIL

    stages = STAGES if args.command == "all" else (args.command,)
    stage_reports: dict[str, dict] = {}
    had_partial_failure = False

    for stage in stages:
        log_event(logger, "stage start", run_id=run_id, stage=stage, event="STAGE_START", status="ok")
        started = time.monotonic()
        try:
            report = execute_stage(stage, bundle, data_dir, run_id, logger)
        except PipelineError as exc:
            log_event(
                logger,
                f"stage failed: {exc}",
                run_id=run_id,
                stage=stage,
                event="STAGE_FAIL",
                status="error",
                error_code=exc.error_code,
            )
            # A failed download is survivable when an earlier copy of the extract is on disk.
            recoverable = stage == "fetch" and resolve_input_path(bundle.pipeline, data_dir).exists()
            if not recoverable or args.strict:
                return EXIT_HARD_FAIL
            had_partial_failure = True
            stage_reports[stage] = {"status": "error", "error_code": exc.error_code}
            continue
        except Exception:
            logger.exception(
                "unexpected failure",
                extra={"run_id": run_id, "stage": stage, "event": "STAGE_FAIL", "status": "error", "error_code": "UNEXPECTED_ERROR"},
            )
            return EXIT_HARD_FAIL

        stage_reports[stage] = report
        log_event(
            logger,
            "stage end",
            run_id=run_id,
            stage=stage,
            event="STAGE_END",
            status="ok",
            duration_ms=int((time.monotonic() - started) * 1000),
            rows_out=_rows_out(stage, report),
        )

    write_run_summary(data_dir, run_id=run_id, run_date=run_date, stage_reports=stage_reports)
    if had_partial_failure:
        return EXIT_PARTIAL
    return EXIT_SUCCESS


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv if argv is not None else sys.argv[1:])
    try:
        return run_command(args)
    except PipelineError:
        return EXIT_HARD_FAIL


if __name__ == "__main__":
    raise SystemExit(main())
