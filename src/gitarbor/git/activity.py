"""Bounded history of executed git commands."""

from __future__ import annotations

import threading
import time
from collections import deque

from gitarbor.git.types import CommandRecord

DEFAULT_CAPACITY = 100


class ActivityLedger:
	"""Most-recent-first ring buffer of :class:`CommandRecord` entries."""

	def __init__(self, capacity: int = DEFAULT_CAPACITY) -> None:
		"""
		Initialize the ledger.

		Args:
		    capacity: Maximum number of records kept; older ones are dropped

		"""
		if capacity < 1:
			msg = f"Ledger capacity must be positive, got {capacity}"
			raise ValueError(msg)
		self.capacity = capacity
		self._records: deque[CommandRecord] = deque(maxlen=capacity)
		self._lock = threading.Lock()

	def record(self, command: str, duration_ms: float, success: bool, error: str | None = None) -> CommandRecord:
		"""
		Prepend a record, evicting the oldest one past capacity.

		Returns:
		    The stored record

		"""
		entry = CommandRecord(
			command=command,
			timestamp=time.time(),
			duration_ms=duration_ms,
			success=success,
			error=error,
		)
		with self._lock:
			# appendleft on a bounded deque drops from the right end
			self._records.appendleft(entry)
		return entry

	def list(self) -> list[CommandRecord]:
		"""Return a copy of the records, most recent first."""
		with self._lock:
			return list(self._records)

	def clear(self) -> None:
		"""Forget every record."""
		with self._lock:
			self._records.clear()

	def __len__(self) -> int:
		"""Return the number of stored records."""
		return len(self._records)
