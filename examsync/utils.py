"""Utility functions for sanitization, identity and activity-log handling."""

import time
from datetime import datetime
from typing import Iterable, List, Optional

import bleach

STUDENT_ID_SEPARATOR = "-"


def clean_text(text: Optional[str]) -> str:
    """Strip any HTML/script content from student supplied text.

    Values end up on the teacher dashboard, so they are reduced to plain text.
    """
    if not text:
        return ""
    sanitized = bleach.clean(str(text), tags=[], strip=True)
    return sanitized.strip()


def normalize_exam_code(code: Optional[str]) -> str:
    """Exam codes are case-insensitive; they are stored upper-cased."""
    return (code or "").strip().upper()


def derive_student_id(full_name: str, class_name: str, absent_number: str) -> str:
    """Build the deterministic student id from the three identity parts.

    The same name, class and absent number always produce the same id, so a
    student logging in twice lands on the same result row.
    """
    parts = [(full_name or "").strip(), (class_name or "").strip(), (absent_number or "").strip()]
    return STUDENT_ID_SEPARATOR.join(parts)


def now_ms() -> int:
    return int(time.time() * 1000)


def stamp_log_entry(message: str, now: Optional[datetime] = None) -> str:
    """Prefix an activity-log line with a human readable timestamp."""
    moment = now or datetime.now()
    return f"[{moment:%Y-%m-%d %H:%M:%S}] {message}"


def merge_activity_log(existing: Iterable[str], incoming: Iterable[str]) -> List[str]:
    """Append incoming entries that are not already present, keeping order.

    The log only ever grows: nothing already stored is dropped or reordered.
    """
    merged = list(existing or [])
    seen = set(merged)
    for entry in incoming or []:
        if entry and entry not in seen:
            merged.append(entry)
            seen.add(entry)
    return merged
