"""
Append-only log of delivery attempts.

Every MessageDeliveryStatus the dispatcher produces ends up here, keyed by
(customer_id, channel, sent_at). With a path configured the log is also
written as JSON lines, one status per line, and read back on startup.
"""

import logging
import threading
from pathlib import Path
from typing import Optional

from shared.models import MessageDeliveryStatus

logger = logging.getLogger("delivery_log")


class DeliveryLog:
    """Durable, append-only record of send attempts for audit and replay."""

    def __init__(self, path: Optional[Path] = None):
        self.path = Path(path) if path is not None else None
        self._lock = threading.Lock()
        self._entries: list[MessageDeliveryStatus] = []
        if self.path is not None and self.path.exists():
            self._entries = self._read(self.path)
            logger.info(f"Loaded {len(self._entries)} delivery records from {self.path}")

    @staticmethod
    def _read(path: Path) -> list[MessageDeliveryStatus]:
        with open(path, "r") as f:
            return [
                MessageDeliveryStatus.model_validate_json(line)
                for line in f
                if line.strip()
            ]

    def append(self, status: MessageDeliveryStatus) -> None:
        with self._lock:
            if self.path is not None:
                self.path.parent.mkdir(parents=True, exist_ok=True)
                with open(self.path, "a") as f:
                    f.write(status.model_dump_json() + "\n")
            self._entries.append(status)

    def entries(self) -> list[MessageDeliveryStatus]:
        with self._lock:
            return list(self._entries)

    def find(
        self,
        customer_id: Optional[str] = None,
        channel: Optional[str] = None,
        successful: Optional[bool] = None,
    ) -> list[MessageDeliveryStatus]:
        """Filter entries; None matches anything."""
        return [
            s for s in self.entries()
            if (customer_id is None or s.customer_id == customer_id)
            and (channel is None or s.channel == channel)
            and (successful is None or s.is_successful == successful)
        ]

    def failures(self) -> list[MessageDeliveryStatus]:
        return self.find(successful=False)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
