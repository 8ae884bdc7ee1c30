"""Model catalog and the shared "current model" cursor.

The catalog is ranked from most capable/experimental to most conservative.
The cursor starts at the stable index (the proven model, not the newest one)
and only moves through explicit administrative calls (`advance`,
`reset_to_stable`). Per-request fallback never touches it.
"""

from __future__ import annotations

import logging
import threading
from typing import Any, Dict, Optional, Sequence, Tuple

LOGGER = logging.getLogger(__name__)


class ModelRegistry:
    """Lock-guarded cursor over an immutable model catalog."""

    def __init__(
        self,
        catalog: Sequence[str],
        stable_index: int = 1,
        fallback_model: Optional[str] = None,
    ) -> None:
        models: Tuple[str, ...] = tuple(str(m).strip() for m in catalog)
        if not models:
            raise ValueError("Model catalog must not be empty")
        if any(not m for m in models):
            raise ValueError("Model identifiers must be non-empty strings")
        if len(models) == 1:
            stable_index = 0
        if not 0 <= stable_index < len(models):
            raise ValueError(
                f"stable_index {stable_index} out of range for {len(models)} models"
            )
        fallback = str(fallback_model).strip() if fallback_model else None

        self._catalog = models
        self._stable_index = stable_index
        self._fallback_model = fallback or None
        self._index = stable_index
        self._lock = threading.Lock()

    @property
    def catalog(self) -> Tuple[str, ...]:
        return self._catalog

    @property
    def stable_index(self) -> int:
        return self._stable_index

    def current(self) -> str:
        with self._lock:
            return self._catalog[self._index]

    def next(self) -> str:
        """Preview the model after the cursor (wrapping) without moving it."""
        with self._lock:
            return self._catalog[(self._index + 1) % len(self._catalog)]

    def fallback(self) -> str:
        """Model used for the single fallback hop of a request.

        A configured `fallback_model` is a fixed slot; otherwise the next
        catalog entry after the cursor is used.
        """
        if self._fallback_model:
            return self._fallback_model
        return self.next()

    def advance(self) -> str:
        with self._lock:
            self._index = (self._index + 1) % len(self._catalog)
            model = self._catalog[self._index]
        LOGGER.info("Switched to model %s", model, extra={"model": model})
        return model

    def reset_to_stable(self) -> str:
        with self._lock:
            self._index = self._stable_index
            model = self._catalog[self._index]
        LOGGER.info("Reset to stable model %s", model, extra={"model": model})
        return model

    def snapshot(self) -> Dict[str, Any]:
        with self._lock:
            index = self._index
        return {
            "catalog": list(self._catalog),
            "current_index": index,
            "current_model": self._catalog[index],
            "stable_index": self._stable_index,
            "stable_model": self._catalog[self._stable_index],
            "fallback_model": self._fallback_model
            or self._catalog[(index + 1) % len(self._catalog)],
        }
