"""Bounded cache of recently processed external message IDs."""

import logging
from collections import OrderedDict

logger = logging.getLogger(__name__)

DEFAULT_CAPACITY = 2000


class DedupCache:
    """Insertion-ordered set of message IDs with a fixed ceiling.

    Only capacity pressure evicts entries, oldest insertion first. Seeing an
    ID again does not refresh its position: the cache only exists to drop
    recent redeliveries (webhook retries, polling overlap).
    """

    def __init__(self, capacity: int = DEFAULT_CAPACITY) -> None:
        """Initialize the cache.

        Args:
            capacity: Maximum number of IDs retained
        """
        if capacity < 1:
            raise ValueError("capacity must be at least 1")
        self._capacity = capacity
        self._ids: OrderedDict[str, None] = OrderedDict()

    def seen(self, message_id: str) -> bool:
        """Check-and-record a message ID.

        Returns:
            True if the ID was already present (cache unchanged), False if it
            was new and has now been recorded
        """
        if message_id in self._ids:
            logger.debug(f"Ignoring duplicate message ID: {message_id}")
            return True

        self._ids[message_id] = None
        if len(self._ids) > self._capacity:
            self._ids.popitem(last=False)
        return False

    @property
    def capacity(self) -> int:
        """Maximum number of IDs retained."""
        return self._capacity

    def __contains__(self, message_id: str) -> bool:
        return message_id in self._ids

    def __len__(self) -> int:
        return len(self._ids)

    def clear(self) -> None:
        """Forget every recorded ID."""
        self._ids.clear()
