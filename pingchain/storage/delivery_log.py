"""Per-user JSONL audit trail of reminder delivery attempts.

``record`` appends one line per channel attempt of a single delivery, in
one write. Lines are never rewritten; queries rebuild per-reminder outcomes
by replaying a user's file in order, so a later successful retry on a
channel supersedes an earlier failure.
"""

from __future__ import annotations

import json
import logging
import re
from collections.abc import Iterable, Iterator
from dataclasses import asdict
from pathlib import Path

from pingchain.config import DELIVERY_LOG_DIR
from pingchain.models import DeliveryRecord

logger = logging.getLogger(__name__)

_UNSAFE = re.compile(r"[^A-Za-z0-9_.@-]")


class DeliveryLog:
    def __init__(self, log_dir: Path | None = None) -> None:
        self.log_dir = log_dir or DELIVERY_LOG_DIR
        self.log_dir.mkdir(parents=True, exist_ok=True)

    def path_for(self, user_id: str) -> Path:
        # one flat file per user; separators and dots can't climb out of log_dir
        name = _UNSAFE.sub("_", user_id).strip(".") or "_anonymous"
        return self.log_dir / f"{name}.jsonl"

    def record(self, records: Iterable[DeliveryRecord]) -> int:
        """Write the channel attempts of one delivery. Returns how many were written."""
        by_user: dict[str, list[str]] = {}
        for rec in records:
            by_user.setdefault(rec.user_id, []).append(json.dumps(asdict(rec), ensure_ascii=False))
        for user_id, lines in by_user.items():
            with open(self.path_for(user_id), "a", encoding="utf-8") as f:
                f.write("\n".join(lines) + "\n")
        return sum(len(lines) for lines in by_user.values())

    def history(self, user_id: str) -> Iterator[DeliveryRecord]:
        path = self.path_for(user_id)
        if not path.exists():
            return
        with open(path, "r", encoding="utf-8") as f:
            for lineno, line in enumerate(f, 1):
                line = line.strip()
                if not line:
                    continue
                try:
                    yield DeliveryRecord(**json.loads(line))
                except (ValueError, TypeError):
                    logger.warning("Skipping malformed delivery record %s:%d", path.name, lineno)

    def for_reminder(self, user_id: str, reminder_id: str) -> list[DeliveryRecord]:
        return [r for r in self.history(user_id) if r.reminder_id == reminder_id]

    def outcome(self, user_id: str, reminder_id: str) -> dict[str, bool]:
        """Latest result per channel for a reminder."""
        return {r.channel: r.success for r in self.for_reminder(user_id, reminder_id)}

    def undelivered(self, user_id: str) -> list[str]:
        """Reminder ids for which no channel has ever succeeded, oldest first."""
        reached: dict[str, bool] = {}
        for r in self.history(user_id):
            reached[r.reminder_id] = reached.get(r.reminder_id, False) or r.success
        return [rid for rid, ok in reached.items() if not ok]
