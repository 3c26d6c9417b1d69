"""State management for reader-sync."""

import csv
import json
import logging
import tempfile
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

from ..utils.paths import get_state_file_path


class AtomicWriter:
    """Simplified atomic writer for JSON operations."""

    def __init__(self, file_path: Path):
        self.file_path = file_path
        self.file_path.parent.mkdir(parents=True, exist_ok=True)

    def write(self, key: str, value: Any) -> None:
        """Atomically write a key-value pair to the JSON file."""
        data = self._load_data()
        data[key] = value

        with tempfile.NamedTemporaryFile(
            mode='w', encoding='utf-8', dir=self.file_path.parent, delete=False, suffix='.tmp'
        ) as tmp_file:
            json.dump(data, tmp_file, indent=2, ensure_ascii=False)
            tmp_file.flush()
            temp_path = Path(tmp_file.name)

        temp_path.replace(self.file_path)

    def read(self, key: Optional[str] = None) -> Any:
        """Read data from the JSON file."""
        data = self._load_data()
        return data.get(key) if key else data

    def _load_data(self) -> Dict[str, Any]:
        if not self.file_path.exists():
            return {}

        try:
            with open(self.file_path, 'r', encoding='utf-8') as f:
                return json.load(f)
        except (json.JSONDecodeError, OSError):
            logging.warning(f"Ignoring unreadable state file {self.file_path}")
            return {}


class StateManager:
    """Persists source snapshots and a log of rejected edits."""

    def __init__(self, state_file: Optional[Path] = None):
        """
        Initialize state manager.

        Args:
            state_file: Optional path to state file. If None, uses default path.
        """
        if state_file is None:
            state_file = get_state_file_path()

        self.writer = AtomicWriter(state_file)
        self.state_file = state_file
        self.failure_log_file = self.state_file.parent / "failures.csv"

    def get_source_state(self, account: str) -> Dict[str, Any]:
        """
        Get the saved snapshot of a source.

        Args:
            account: Account name

        Returns:
            Snapshot dictionary, empty if nothing was saved
        """
        data = self.writer.read("sources") or {}
        return data.get(account) or {}

    def save_source_state(self, account: str, snapshot: Dict[str, Any]) -> None:
        """
        Save the snapshot of a source.

        Args:
            account: Account name
            snapshot: Dictionary produced by ``ReaderSource.snapshot()``
        """
        data = self.writer.read("sources") or {}
        data[account] = dict(snapshot, saved_at=datetime.now(timezone.utc).isoformat())
        self.writer.write("sources", data)
        logging.debug(f"Saved state for {account}")

    def get_saved_accounts(self) -> List[str]:
        """Names of accounts with a saved snapshot."""
        return list(self.writer.read("sources") or {})

    def forget_source(self, account: str) -> bool:
        """Drop the snapshot of a removed account."""
        data = self.writer.read("sources") or {}
        if account not in data:
            return False
        del data[account]
        self.writer.write("sources", data)
        return True

    def get_stats(self) -> Dict:
        """
        Get persisted statistics.

        Returns:
            Dictionary with statistics
        """
        sources = self.writer.read("sources") or {}
        return {
            "accounts": len(sources),
            "subscriptions": sum(len(s.get("timestamps") or {}) for s in sources.values()),
            "pending_actions": sum(len(s.get("pending_actions") or []) for s in sources.values()),
            "logged_failures": self._count_failures(),
        }

    def _count_failures(self) -> int:
        if not self.failure_log_file.exists():
            return 0
        with self.failure_log_file.open("r", encoding="utf-8", newline="") as fh:
            return max(sum(1 for _ in fh) - 1, 0)

    def record_failure(self, *, account: str, action: str, reason: str) -> None:
        """Append a rejected edit to the CSV log."""
        self.failure_log_file.parent.mkdir(parents=True, exist_ok=True)
        timestamp = datetime.now(timezone.utc).isoformat()
        cleaned_reason = " ".join((reason or "").split())

        write_header = not self.failure_log_file.exists()
        with self.failure_log_file.open("a", encoding="utf-8", newline="") as fh:
            writer = csv.writer(fh)
            if write_header:
                writer.writerow(["timestamp", "account", "action", "reason"])
            writer.writerow([timestamp, account, action, cleaned_reason])
