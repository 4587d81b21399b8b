"""Durable client-local cache of in-progress attempts.

Snapshots are keyed ``{examCode}_{studentId}`` and stored as
``{"answers": {...}, "logs": [...]}``. The file store keeps one JSON file
per key and replaces it atomically, so a crash mid-write leaves the
previous snapshot intact.
"""

import logging
import os
import tempfile
from pathlib import Path
from typing import Dict, Optional, Union
from urllib.parse import quote

from pydantic import ValidationError

from examsync.config import PROGRESS_DIR
from examsync.schemas import ProgressSnapshot

logger = logging.getLogger(__name__)


def snapshot_key(exam_code: str, student_id: str) -> str:
    return f"{exam_code}_{student_id}"


class FileProgressStore:
    """Snapshots as ``<directory>/<key>.json`` files."""

    def __init__(self, directory: Union[str, Path, None] = None):
        self.directory = Path(directory or PROGRESS_DIR)

    def _path(self, exam_code: str, student_id: str) -> Path:
        # Student ids contain free text; keep file names safe
        filename = quote(snapshot_key(exam_code, student_id), safe="") + ".json"
        return self.directory / filename

    def load(self, exam_code: str, student_id: str) -> Optional[ProgressSnapshot]:
        path = self._path(exam_code, student_id)
        if not path.exists():
            return None
        try:
            return ProgressSnapshot.model_validate_json(path.read_text(encoding="utf-8"))
        except (OSError, ValidationError) as exc:
            # An unreadable snapshot is treated as absent rather than blocking the attempt
            logger.warning("Ignoring unreadable snapshot %s: %s", path, exc)
            return None

    def save(self, exam_code: str, student_id: str, snapshot: ProgressSnapshot) -> None:
        path = self._path(exam_code, student_id)
        self.directory.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(dir=self.directory, prefix=".tmp-", suffix=".json")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                handle.write(snapshot.model_dump_json())
            os.replace(tmp_name, path)
        except OSError:
            if os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise

    def delete(self, exam_code: str, student_id: str) -> None:
        path = self._path(exam_code, student_id)
        try:
            path.unlink()
        except FileNotFoundError:
            pass


class MemoryProgressStore:
    """In-process store holding the same JSON text the file store writes."""

    def __init__(self):
        self.entries: Dict[str, str] = {}

    def load(self, exam_code: str, student_id: str) -> Optional[ProgressSnapshot]:
        raw = self.entries.get(snapshot_key(exam_code, student_id))
        if raw is None:
            return None
        return ProgressSnapshot.model_validate_json(raw)

    def save(self, exam_code: str, student_id: str, snapshot: ProgressSnapshot) -> None:
        self.entries[snapshot_key(exam_code, student_id)] = snapshot.model_dump_json()

    def delete(self, exam_code: str, student_id: str) -> None:
        self.entries.pop(snapshot_key(exam_code, student_id), None)
