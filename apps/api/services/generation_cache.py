"""
Generation Result Cache

Lets a client that dropped its connection mid-generation pick the result
back up instead of paying for another oracle call.

    start(user, request_id)        -> pending
    complete(user, request_id, w)  -> complete (kept 10 minutes)
    error(user, request_id, msg)   -> error    (kept 5 minutes)
    get(user, request_id)          -> entry, or None once past its TTL

Entries are keyed by (user_id, request_id): a request id only resolves
for the user who started it, and two users reusing the same id never
share an entry. A miss is "not found", never an error.

Expired entries are deleted on read and swept on every start(), so
generations nobody polls don't accumulate.

Process-local: one instance is built in main.py and shared by the
request handlers. Running more than one API process needs a shared store
(Redis) behind the same interface.
"""

import logging
import threading
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, Optional, Tuple

from core.config import settings

logger = logging.getLogger(__name__)


PROGRESS_PER_SECOND = 1.5
PROGRESS_CAP = 90

CacheKey = Tuple[str, str]


class GenerationStatus(str, Enum):
    PENDING = "pending"
    COMPLETE = "complete"
    ERROR = "error"


@dataclass
class GenerationCacheEntry:
    user_id: str
    request_id: str
    status: GenerationStatus
    started_at: float
    timestamp: float  # Last state change
    workout: Optional[Dict[str, Any]] = None
    error: Optional[str] = None
    error_code: Optional[str] = None
    reported_progress: int = 0
    phase: Optional[str] = None
    message: Optional[str] = None
    warnings: list = field(default_factory=list)


def _key(user_id: Any, request_id: str) -> CacheKey:
    return (str(user_id), request_id)


class GenerationCache:
    """
    In-memory (user_id, request_id) -> GenerationCacheEntry map.

    clock is injectable (seconds, like time.time) so tests can move time.
    """

    def __init__(
        self,
        ttl_s: int = settings.GENERATION_CACHE_TTL_S,
        error_ttl_s: int = settings.GENERATION_CACHE_ERROR_TTL_S,
        clock: Callable[[], float] = time.time,
    ):
        self.ttl_s = ttl_s
        self.error_ttl_s = error_ttl_s
        self._clock = clock
        self._entries: Dict[CacheKey, GenerationCacheEntry] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def _ttl_for(self, entry: GenerationCacheEntry) -> int:
        return self.error_ttl_s if entry.status == GenerationStatus.ERROR else self.ttl_s

    def _expired(self, entry: GenerationCacheEntry, now: float) -> bool:
        return now - entry.timestamp > self._ttl_for(entry)

    def _purge_locked(self, now: float) -> int:
        expired = [key for key, entry in self._entries.items() if self._expired(entry, now)]
        for key in expired:
            del self._entries[key]
        return len(expired)

    def start(self, user_id: Any, request_id: str) -> GenerationCacheEntry:
        now = self._clock()
        entry = GenerationCacheEntry(
            user_id=str(user_id),
            request_id=request_id,
            status=GenerationStatus.PENDING,
            started_at=now,
            timestamp=now,
        )
        with self._lock:
            purged = self._purge_locked(now)
            self._entries[_key(user_id, request_id)] = entry
        if purged:
            logger.debug(f"Purged {purged} expired generation entries")
        logger.debug(f"Generation {request_id} started for user {user_id}")
        return entry

    def report_progress(self, user_id: Any, request_id: str, percent: int,
                        phase: Optional[str] = None, message: Optional[str] = None) -> None:
        with self._lock:
            entry = self._entries.get(_key(user_id, request_id))
            if entry is None or entry.status != GenerationStatus.PENDING:
                return
            entry.reported_progress = max(entry.reported_progress, int(percent))
            entry.phase = phase or entry.phase
            entry.message = message or entry.message

    def complete(self, user_id: Any, request_id: str, workout: Dict[str, Any],
                 warnings: Optional[list] = None) -> None:
        now = self._clock()
        key = _key(user_id, request_id)
        with self._lock:
            entry = self._entries.get(key)
            self._entries[key] = GenerationCacheEntry(
                user_id=str(user_id),
                request_id=request_id,
                status=GenerationStatus.COMPLETE,
                started_at=entry.started_at if entry else now,
                timestamp=now,
                workout=workout,
                reported_progress=100,
                phase="complete",
                warnings=list(warnings or []),
            )
        logger.info(f"Generation {request_id} complete", extra={"user_id": user_id, "request_id": request_id})

    def error(self, user_id: Any, request_id: str, message: str, error_code: Optional[str] = None) -> None:
        now = self._clock()
        key = _key(user_id, request_id)
        with self._lock:
            entry = self._entries.get(key)
            self._entries[key] = GenerationCacheEntry(
                user_id=str(user_id),
                request_id=request_id,
                status=GenerationStatus.ERROR,
                started_at=entry.started_at if entry else now,
                timestamp=now,
                error=message,
                error_code=error_code,
                reported_progress=entry.reported_progress if entry else 0,
                phase="error",
            )
        logger.info(
            f"Generation {request_id} failed: {message}",
            extra={"user_id": user_id, "request_id": request_id},
        )

    def get(self, user_id: Any, request_id: str) -> Optional[GenerationCacheEntry]:
        now = self._clock()
        key = _key(user_id, request_id)
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            if self._expired(entry, now):
                del self._entries[key]
                return None
            return entry

    def estimated_progress(self, user_id: Any, request_id: str) -> Optional[int]:
        """
        0-100 for a live entry, None when unknown or expired.

        Pending entries ramp with elapsed time but stay below the cap until
        complete() lands; never lower than what the generator last reported.
        """
        entry = self.get(user_id, request_id)
        if entry is None:
            return None
        if entry.status == GenerationStatus.COMPLETE:
            return 100

        elapsed = max(0.0, self._clock() - entry.started_at)
        ramp = int(elapsed * PROGRESS_PER_SECOND)
        return min(PROGRESS_CAP, max(ramp, entry.reported_progress))

    def purge_expired(self) -> int:
        with self._lock:
            return self._purge_locked(self._clock())
