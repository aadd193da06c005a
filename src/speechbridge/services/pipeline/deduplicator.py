"""
Change Deduplicator for the transcript source.

Both delivery channels (push webhook and periodic poll) feed the same
``accept`` entry point, so the same update is routinely observed twice.
Updates are compared by identity only; timestamps are never consulted, so
an update carrying an older ``updated_at`` but a new id is still accepted.
"""

from __future__ import annotations

import logging
import threading
from collections import OrderedDict
from typing import Optional

from .models import SourceUpdate

logger = logging.getLogger(__name__)


class ChangeDeduplicator:
    """
    Identity gate in front of the segmenter.

    Attributes:
        history_size: Number of recently accepted ids remembered in addition
                      to the last accepted one.
    """

    def __init__(self, history_size: int = 256):
        self.history_size = max(1, history_size)
        self._last_accepted_id: Optional[str] = None
        self._recent: OrderedDict[str, None] = OrderedDict()
        self._lock = threading.Lock()

    def accept(self, update: SourceUpdate) -> Optional[str]:
        """
        Decide whether an update carries new content.

        Args:
            update: Observation from either source channel

        Returns:
            The update's text when accepted, None when it is stale or empty
        """
        if not update.id or not update.text:
            return None

        with self._lock:
            if update.id == self._last_accepted_id or update.id in self._recent:
                logger.debug(f"Ignoring stale update {update.id}")
                return None

            self._last_accepted_id = update.id
            self._recent[update.id] = None
            while len(self._recent) > self.history_size:
                self._recent.popitem(last=False)

        logger.info(f"Accepted update {update.id} ({len(update.text)} chars)")
        return update.text

    def reset(self) -> None:
        """Forget every accepted id."""
        with self._lock:
            self._last_accepted_id = None
            self._recent.clear()

    @property
    def last_accepted_id(self) -> Optional[str]:
        return self._last_accepted_id
