"""Optional download of the raw gazetteer extract."""

from __future__ import annotations

import shutil
import zipfile
from pathlib import Path
from urllib.parse import urlparse

from placenames.common.errors import StageError
from placenames.common.http import HttpClient
from placenames.ingest.gnis_parse import resolve_input_path


def _extract_first_text_member(archive_path: Path, target_path: Path) -> str:
    try:
        with zipfile.ZipFile(archive_path) as archive:
            members = sorted(name for name in archive.namelist() if name.lower().endswith(".txt"))
            if not members:
                raise StageError(f"No .txt member in archive: {archive_path}")
            with archive.open(members[0]) as src, target_path.open("wb") as dst:
                shutil.copyfileobj(src, dst)
            return members[0]
    except zipfile.BadZipFile as exc:
        raise StageError(f"Corrupt archive: {archive_path}") from exc


def run_fetch(pipeline_config: dict, data_dir: Path, run_id: str, client: HttpClient | None = None) -> dict:
    download_url = (pipeline_config["source"].get("download_url") or "").strip()
    input_path = resolve_input_path(pipeline_config, data_dir)
    if not download_url:
        return {"run_id": run_id, "downloaded": False, "input_path": str(input_path)}

    is_zip = urlparse(download_url).path.lower().endswith(".zip")
    download_path = input_path.with_suffix(".zip") if is_zip else input_path

    owns_client = client is None
    client = client or HttpClient()
    try:
        size = client.download(download_url, download_path)
    finally:
        if owns_client:
            client.close()

    member = None
    if is_zip:
        member = _extract_first_text_member(download_path, input_path)
        download_path.unlink()

    return {
        "run_id": run_id,
        "downloaded": True,
        "url": download_url,
        "bytes": size,
        "archive_member": member,
        "input_path": str(input_path),
    }
