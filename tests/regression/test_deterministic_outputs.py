import shutil
from pathlib import Path

import pytest

from placenames.cli import parse_args, run_command
from placenames.common.fs import read_json

REPO_ROOT = Path(__file__).resolve().parents[2]
FIXTURE = REPO_ROOT / "tests" / "fixtures" / "sample_extract.txt"


def _run_once(data_dir: Path, run_id: str) -> None:
    target = data_dir / "raw" / "NationalFile.txt"
    target.parent.mkdir(parents=True, exist_ok=True)
    shutil.copyfile(FIXTURE, target)
    args = parse_args(
        [
            "all",
            "--config-dir",
            str(REPO_ROOT / "config"),
            "--data-dir",
            str(data_dir),
            "--run-date",
            "2026-02-17",
            "--run-id",
            run_id,
        ]
    )
    assert run_command(args) == 0


@pytest.mark.regression
def test_outputs_are_byte_stable_for_same_inputs(tmp_path: Path):
    first = tmp_path / "first"
    second = tmp_path / "second"

    _run_once(first, "run-a")
    _run_once(second, "run-b")

    for name in ("features.csv", "names.csv"):
        assert (first / "out" / name).read_bytes() == (second / "out" / name).read_bytes()

    first_result = read_json(first / "intermediate" / "disambiguation.json")
    second_result = read_json(second / "intermediate" / "disambiguation.json")
    for key in ("excluded", "qualifiers", "decisions", "stats"):
        assert first_result[key] == second_result[key]
