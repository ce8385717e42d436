"""
Version history for PineScript snapshots.

Storage layout:
    {storage_directory}/
        {id}/                          # id = content hash of the script
            {timestamp}.src            # script text
            {timestamp}.meta.json      # ScriptVersionRecord minus the content

Files are written atomically (write to .tmp, then rename) and loaded in
lexicographic order, which is chronological because timestamps are fixed-width
ISO-8601 UTC. Records are append-only: nothing here deletes or rewrites one.

Concurrent writers to the same id are not synchronized; callers keep a
single writer per id.
"""

from __future__ import annotations

import hashlib
import json
import logging
import re
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Callable, Dict, List, Optional, Union

from pydantic import ValidationError

from ..models.history import ScriptVersionRecord
from ..models.script import ScriptVersion

logger = logging.getLogger(__name__)

ID_LENGTH = 16
_ID_RE = re.compile(r"^[0-9a-f]+$")

SOURCE_SUFFIX = ".src"
META_SUFFIX = ".meta.json"


def content_id(script: str) -> str:
    """Deterministic id of a script: truncated SHA-256 of its UTF-8 text."""
    return hashlib.sha256(script.encode("utf-8")).hexdigest()[:ID_LENGTH]


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _file_stem(timestamp: datetime) -> str:
    return timestamp.isoformat(timespec="microseconds").replace(":", "-").replace(".", "-")


def compare_versions(old: str, new: str) -> List[str]:
    """
    Naive positional line diff.

    Lines are compared index by index: a differing pair yields ``"- old"``
    then ``"+ new"``; lines present on one side only yield a single entry.
    """
    old_lines = old.split("\n")
    new_lines = new.split("\n")
    diff: List[str] = []
    for idx in range(max(len(old_lines), len(new_lines))):
        before = old_lines[idx] if idx < len(old_lines) else None
        after = new_lines[idx] if idx < len(new_lines) else None
        if before == after:
            continue
        if before is not None:
            diff.append(f"- {before}")
        if after is not None:
            diff.append(f"+ {after}")
    return diff


class VersionHistoryService:
    """Append-only on-disk history of script snapshots, keyed by content hash."""

    def __init__(
        self,
        storage_directory: Union[str, Path],
        cache_enabled: bool = True,
        clock: Callable[[], datetime] = _utc_now,
    ):
        self.storage_directory = Path(storage_directory)
        self.cache_enabled = cache_enabled
        self._clock = clock
        self._cache: Dict[str, List[ScriptVersionRecord]] = {}
        logger.info(f"Version history stored in {self.storage_directory}")

    def save_version(
        self,
        script: str,
        version: ScriptVersion,
        valid: bool,
        notes: Optional[str] = None,
    ) -> str:
        """
        Persist a snapshot and return its id.

        Saving identical content twice appends a second record under the same id.
        """
        script_id = content_id(script)
        directory = self.storage_directory / script_id
        directory.mkdir(parents=True, exist_ok=True)

        timestamp = self._clock()
        stem = _file_stem(timestamp)
        while (directory / f"{stem}{SOURCE_SUFFIX}").exists():
            timestamp += timedelta(microseconds=1)
            stem = _file_stem(timestamp)

        record = ScriptVersionRecord(
            id=script_id,
            timestamp=timestamp.isoformat(timespec="microseconds"),
            content=script,
            version=version,
            valid=valid,
            notes=notes,
        )

        self._write_atomic(directory / f"{stem}{SOURCE_SUFFIX}", script)
        self._write_atomic(
            directory / f"{stem}{META_SUFFIX}",
            json.dumps(record.metadata(), indent=2, ensure_ascii=False),
        )

        if self.cache_enabled and script_id in self._cache:
            self._cache[script_id].append(record)

        logger.info(f"💾 Saved script version {script_id} ({version.value}, valid={valid})")
        return script_id

    def get_history(self, script_id: str) -> List[ScriptVersionRecord]:
        """
        All records for ``script_id``, oldest first. Unknown ids give an empty list.

        Raises:
            ValueError: the id is not a lowercase hex string
        """
        self._check_id(script_id)
        if self.cache_enabled and script_id in self._cache:
            return list(self._cache[script_id])

        records = self._load(script_id)
        if self.cache_enabled:
            self._cache[script_id] = records
        return list(records)

    def get_version(self, script_id: str, index: Optional[int] = None) -> Optional[ScriptVersionRecord]:
        """
        One record of a history: the latest by default, otherwise by position.

        Negative indexes count from the end. Returns None when the history is
        empty or the index is out of range.
        """
        history = self.get_history(script_id)
        if not history:
            return None
        if index is None:
            return history[-1]
        try:
            return history[index]
        except IndexError:
            return None

    def clear_cache(self) -> None:
        self._cache.clear()

    @staticmethod
    def _check_id(script_id: str) -> None:
        if not script_id or not _ID_RE.match(script_id):
            raise ValueError(f"Invalid script id: {script_id!r}")

    def _load(self, script_id: str) -> List[ScriptVersionRecord]:
        directory = self.storage_directory / script_id
        if not directory.is_dir():
            return []

        records: List[ScriptVersionRecord] = []
        for source in sorted(directory.glob(f"*{SOURCE_SUFFIX}")):
            stem = source.name[: -len(SOURCE_SUFFIX)]
            meta_file = directory / f"{stem}{META_SUFFIX}"
            try:
                with open(meta_file, "r", encoding="utf-8") as f:
                    metadata = json.load(f)
                with open(source, "r", encoding="utf-8", newline="") as f:
                    content = f.read()
                records.append(ScriptVersionRecord(**metadata, content=content))
            except (OSError, json.JSONDecodeError, ValidationError, TypeError) as e:
                logger.warning(f"Skipping unreadable history entry {source.name} for {script_id}: {e}")
        return records

    @staticmethod
    def _write_atomic(path: Path, data: str) -> None:
        temp_file = path.with_name(path.name + ".tmp")
        try:
            with open(temp_file, "w", encoding="utf-8", newline="") as f:
                f.write(data)
            temp_file.replace(path)
        except OSError:
            if temp_file.exists():
                temp_file.unlink()
            raise
