"""
Sequential display-id allocation (``TC-7``, ``DEF-12``).

Two paths:
  - Batch imports build one SequentialIdAllocator from the ids that exist at
    batch start and draw from it for every row. Ids handed out earlier in the
    batch are remembered, so no per-row uniqueness query is needed.
  - Interactive creation calls create_with_unique_id(), which re-reads the
    id space on every attempt and retries when a concurrent writer took the
    same id first (unique constraint violation).

Numbering is unique but not gap-free: ids drawn by rows that later fail are
not reused.
"""
import logging
import re
import time
from collections.abc import Callable, Iterable
from typing import TypeVar

from flask import current_app
from sqlalchemy.exc import IntegrityError

from testhub.core.exceptions import ConflictError
from testhub.models import db

logger = logging.getLogger(__name__)

T = TypeVar("T")

_TRAILING_NUMBER = re.compile(r"(\d+)\s*$")

DEFAULT_RETRY_ATTEMPTS = 5
DEFAULT_RETRY_BACKOFF_SECONDS = 0.1


def trailing_number(display_id: str | None) -> int | None:
    """Extract the trailing integer of an id (``"TC-12"`` -> 12)."""
    if not display_id:
        return None
    match = _TRAILING_NUMBER.search(display_id)
    return int(match.group(1)) if match else None


class SequentialIdAllocator:
    """Batch-scoped allocator: scan once, then increment locally."""

    def __init__(self, prefix: str, existing_ids: Iterable[str | None] = ()):
        self.prefix = prefix
        self._taken: set[str] = set()
        highest = 0
        for display_id in existing_ids:
            if not display_id:
                continue
            self._taken.add(display_id.upper())
            number = trailing_number(display_id)
            if number is not None and number > highest:
                highest = number
        self._next = highest + 1

    def next(self) -> str:
        while True:
            candidate = f"{self.prefix}-{self._next}"
            self._next += 1
            if candidate.upper() not in self._taken:
                self._taken.add(candidate.upper())
                return candidate

    def reserve(self, display_id: str) -> None:
        """Mark an id as used (e.g. one observed through a conflict)."""
        self._taken.add(display_id.upper())
        number = trailing_number(display_id)
        if number is not None and number >= self._next:
            self._next = number + 1

    def __contains__(self, display_id: str) -> bool:
        return display_id.upper() in self._taken


def next_sequential_id(existing_ids: Iterable[str | None], prefix: str) -> str:
    """Return the first free ``<prefix>-<N>`` above the highest existing number."""
    return SequentialIdAllocator(prefix, existing_ids).next()


def _retry_settings() -> tuple[int, float]:
    config = current_app.config
    attempts = int(config.get("ID_RETRY_ATTEMPTS", DEFAULT_RETRY_ATTEMPTS))
    backoff = float(config.get("ID_RETRY_BACKOFF_SECONDS", DEFAULT_RETRY_BACKOFF_SECONDS))
    return max(attempts, 1), max(backoff, 0.0)


def _is_unique_violation(exc: IntegrityError) -> bool:
    # SQLite: "UNIQUE constraint failed", PostgreSQL: "duplicate key value violates unique constraint"
    return "unique" in str(exc.orig).lower()


def create_with_unique_id(
    resource: str,
    next_id: Callable[[], str],
    create: Callable[[str], T],
) -> T:
    """Run ``create(display_id)`` in a savepoint, retrying on a uniqueness violation.

    Args:
        resource: Model name used in logs and in the final ConflictError.
        next_id: Produces a fresh candidate id per attempt.
        create: Adds and flushes the entity (and its children) for the id.

    Raises:
        ConflictError: every attempt hit a unique constraint.
        IntegrityError: any other constraint failure, unchanged.
    """
    attempts, backoff = _retry_settings()
    display_id = None
    for attempt in range(1, attempts + 1):
        display_id = next_id()
        try:
            with db.session.begin_nested():
                return create(display_id)
        except IntegrityError as exc:
            if not _is_unique_violation(exc):
                raise
            logger.warning(
                "%s id %s collided (attempt %d/%d): %s",
                resource, display_id, attempt, attempts, exc.orig,
            )
            if attempt < attempts and backoff:
                time.sleep(backoff * attempt)
    raise ConflictError(resource, "display_id", display_id)
