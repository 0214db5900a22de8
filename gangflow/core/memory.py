"""Shared conversational memory for gang members."""

from typing import Dict, Iterable, List

from .logging import get_logger

logger = get_logger(__name__)

MemoryEntry = Dict[str, str]


class GangMemory:
    """Append-only conversation logs keyed by memory id.

    Every member that declares the same ``memoryId`` reads and extends the
    same bucket. There is no locking: parallel squad members that share a
    bucket append in completion order.
    """

    def __init__(self):
        self._buckets: Dict[str, List[MemoryEntry]] = {}

    def get(self, memory_id: str) -> List[MemoryEntry]:
        """Return a copy of the bucket's entries, empty for an empty or unseen id."""
        if not memory_id:
            return []
        return list(self._buckets.get(memory_id, []))

    def append(self, memory_id: str, entries: Iterable[MemoryEntry]) -> None:
        """Append entries to a bucket, preserving their order. No-op for an empty id."""
        if not memory_id:
            return
        current = self._buckets.get(memory_id, [])
        self._buckets[memory_id] = current + [dict(entry) for entry in entries]
        logger.debug(f"Memory bucket '{memory_id}' now holds {len(self._buckets[memory_id])} entries")

    def bucket_ids(self) -> List[str]:
        """List the ids of all buckets written so far."""
        return list(self._buckets)

    def snapshot(self) -> Dict[str, List[MemoryEntry]]:
        """Copy of every bucket, for reporting."""
        return {memory_id: list(entries) for memory_id, entries in self._buckets.items()}
