"""
Attempt history storage for the timed quiz.
"""
import json
import logging
import os
from pathlib import Path
from typing import Any, Dict, List

from .models import AttemptRecord


class HistoryStoreError(Exception):
    """Raised when the attempt history cannot be read or written."""
    pass


class HistoryStore:
    """Append-only log of completed attempts."""

    def append(self, record: AttemptRecord) -> AttemptRecord:
        """
        Add one attempt record.

        Returns:
            The stored record, carrying its assigned attempt id
        """
        raise NotImplementedError

    def list_all(self) -> List[AttemptRecord]:
        """Return every stored attempt. Callers must not rely on ordering."""
        raise NotImplementedError

    def clear_all(self) -> None:
        """Remove every stored attempt."""
        raise NotImplementedError


class InMemoryHistoryStore(HistoryStore):
    """History kept in process memory only."""

    def __init__(self):
        self._records: List[AttemptRecord] = []
        self._next_id = 1

    def append(self, record: AttemptRecord) -> AttemptRecord:
        stored = AttemptRecord(
            final_score=record.final_score,
            max_score=record.max_score,
            timestamp=record.timestamp,
            attempt_id=self._next_id,
        )
        self._next_id += 1
        self._records.append(stored)
        return stored

    def list_all(self) -> List[AttemptRecord]:
        return list(self._records)

    def clear_all(self) -> None:
        self._records.clear()


class JsonHistoryStore(HistoryStore):
    """
    History persisted to a JSON file.

    File layout:
    {
        "attempts": [
            {"id": 1, "final_score": 2, "max_score": 3, "timestamp": "..."}
        ]
    }
    """

    def __init__(self, history_file: str = "./data/history.json"):
        """
        Initialize the store.

        Args:
            history_file: Path of the JSON file holding past attempts
        """
        self.history_file = Path(history_file)
        self.logger = logging.getLogger(__name__)

    def append(self, record: AttemptRecord) -> AttemptRecord:
        data = self._read()
        attempts = data["attempts"]

        next_id = max((entry.get("id") or 0 for entry in attempts), default=0) + 1
        stored = AttemptRecord(
            final_score=record.final_score,
            max_score=record.max_score,
            timestamp=record.timestamp,
            attempt_id=next_id,
        )
        attempts.append(stored.to_dict())
        self._write(data)

        self.logger.info(
            f"Saved attempt {next_id}: {stored.final_score}/{stored.max_score}",
            extra={'event_type': 'attempt_saved', 'attempt_id': next_id}
        )
        return stored

    def list_all(self) -> List[AttemptRecord]:
        attempts = self._read()["attempts"]
        try:
            return [AttemptRecord.from_dict(entry) for entry in attempts]
        except (KeyError, TypeError, ValueError) as e:
            raise HistoryStoreError(f"Malformed attempt in {self.history_file}: {e}") from e

    def clear_all(self) -> None:
        self._write({"attempts": []})
        self.logger.info(f"Cleared attempt history in {self.history_file}")

    def _read(self) -> Dict[str, Any]:
        if not self.history_file.exists():
            return {"attempts": []}

        try:
            with open(self.history_file, 'r', encoding='utf-8') as f:
                data = json.load(f)
        except json.JSONDecodeError as e:
            raise HistoryStoreError(f"Invalid JSON in {self.history_file}: {e}") from e
        except OSError as e:
            raise HistoryStoreError(f"Failed to read {self.history_file}: {e}") from e

        if not isinstance(data, dict) or not isinstance(data.get("attempts"), list):
            raise HistoryStoreError(f"History file {self.history_file} must contain an 'attempts' array")

        for i, entry in enumerate(data["attempts"]):
            if not isinstance(entry, dict):
                raise HistoryStoreError(f"Attempt {i} in {self.history_file} must be an object")
            attempt_id = entry.get("id")
            if attempt_id is not None and (isinstance(attempt_id, bool) or not isinstance(attempt_id, int)):
                raise HistoryStoreError(f"Attempt {i} in {self.history_file} has invalid id {attempt_id!r}")
        return data

    def _write(self, data: Dict[str, Any]) -> None:
        temp_file = self.history_file.with_name(self.history_file.name + ".tmp")
        try:
            self.history_file.parent.mkdir(parents=True, exist_ok=True)
            with open(temp_file, 'w', encoding='utf-8') as f:
                json.dump(data, f, indent=2, ensure_ascii=False)
            os.replace(temp_file, self.history_file)
        except OSError as e:
            raise HistoryStoreError(f"Failed to write {self.history_file}: {e}") from e
