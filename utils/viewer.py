"""
Full-screen gallery viewer state.

A session is either closed or open on one image. Navigation past either end
of the list is ignored, never raised. The last-viewed image id is handed in
at construction and handed back on close, so the grid can scroll to it on
its next render.
"""
import secrets
import threading
import time
from collections import OrderedDict
from enum import Enum
from typing import Callable, Optional, Sequence

from core.config import VIEWER_MAX_SESSIONS, VIEWER_SESSION_TTL_SEC, logger
from models.gallery import ImageRecord


class Direction(str, Enum):
    FORWARD = "forward"
    BACKWARD = "backward"
    NONE = "none"


KEY_ESCAPE = "Escape"
KEY_ARROW_RIGHT = "ArrowRight"
KEY_ARROW_LEFT = "ArrowLeft"


class ViewerSession:
    def __init__(
        self,
        images: Sequence[ImageRecord],
        last_viewed_id: Optional[int] = None,
        on_close: Optional[Callable[[int], None]] = None,
    ):
        self.images = tuple(images)
        self.last_viewed_id = last_viewed_id
        self.on_close = on_close
        self.active_index: Optional[int] = None
        self.direction = Direction.NONE

    @property
    def is_open(self) -> bool:
        return self.active_index is not None

    @property
    def active_image(self) -> Optional[ImageRecord]:
        if self.active_index is None:
            return None
        return self.images[self.active_index]

    def open(self, index: int) -> bool:
        """Open on ``index``; an empty gallery stays closed.

        Out-of-range indices are clamped. Opening an already open session
        jumps to the image instead.
        """
        if not self.images:
            return False
        if self.is_open:
            return self.jump_to(index)
        self.active_index = self._clamp(index)
        self.direction = Direction.NONE
        return True

    def jump_to(self, index: int) -> bool:
        if not self.is_open:
            return False
        target = self._clamp(index)
        if target == self.active_index:
            return False
        self.direction = Direction.FORWARD if target > self.active_index else Direction.BACKWARD
        self.active_index = target
        return True

    def navigate_next(self) -> bool:
        if not self.is_open or self.active_index + 1 >= len(self.images):
            return False
        self.active_index += 1
        self.direction = Direction.FORWARD
        return True

    def navigate_previous(self) -> bool:
        if not self.is_open or self.active_index - 1 < 0:
            return False
        self.active_index -= 1
        self.direction = Direction.BACKWARD
        return True

    def close(self) -> Optional[int]:
        """Close the viewer and return the id of the image that was showing."""
        if not self.is_open:
            return None
        image_id = self.images[self.active_index].id
        self.active_index = None
        self.direction = Direction.NONE
        self.last_viewed_id = image_id
        if self.on_close is not None:
            self.on_close(image_id)
        return image_id

    def handle_key(self, key: str) -> bool:
        if not self.is_open:
            return False
        if key == KEY_ESCAPE:
            return self.close() is not None
        if key == KEY_ARROW_RIGHT:
            return self.navigate_next()
        if key == KEY_ARROW_LEFT:
            return self.navigate_previous()
        return False

    def scroll_target(self) -> Optional[int]:
        """Image id the grid should centre on, or None. Does not clear the marker."""
        if self.is_open or self.last_viewed_id is None:
            return None
        if any(img.id == self.last_viewed_id for img in self.images):
            return self.last_viewed_id
        return None

    def snapshot(self) -> dict:
        return {
            "open": self.is_open,
            "active_index": self.active_index,
            "active_image": self.active_image.model_dump() if self.active_image else None,
            "direction": self.direction.value,
            "count": len(self.images),
            "last_viewed_id": self.last_viewed_id,
        }

    def _clamp(self, index: int) -> int:
        return max(0, min(int(index), len(self.images) - 1))


class ViewerRegistry:
    """Open viewer sessions keyed by an opaque id.

    Sessions are dropped on close, after ``ttl_seconds`` without a lookup,
    or oldest-first once ``max_sessions`` is reached.
    """

    def __init__(self, ttl_seconds: int = VIEWER_SESSION_TTL_SEC, max_sessions: int = VIEWER_MAX_SESSIONS,
                 clock: Callable[[], float] = time.monotonic):
        self.ttl_seconds = ttl_seconds
        self.max_sessions = max(1, int(max_sessions))
        self._clock = clock
        # sid -> (session, last touched); kept in least-recently-touched order
        self._sessions: "OrderedDict[str, tuple[ViewerSession, float]]" = OrderedDict()
        self._lock = threading.Lock()

    def _prune(self, now: float) -> None:
        while self._sessions:
            sid, (_, touched) = next(iter(self._sessions.items()))
            if now - touched < self.ttl_seconds:
                break
            self._sessions.popitem(last=False)
            logger.info(f"viewer session {sid} expired")

    def start(self, images: Sequence[ImageRecord], index: int, last_viewed_id: Optional[int] = None) -> Optional[tuple[str, ViewerSession]]:
        session = ViewerSession(images, last_viewed_id=last_viewed_id)
        if not session.open(index):
            return None
        sid = secrets.token_urlsafe(16)
        with self._lock:
            now = self._clock()
            self._prune(now)
            while len(self._sessions) >= self.max_sessions:
                evicted, _ = self._sessions.popitem(last=False)
                logger.info(f"viewer session {evicted} evicted")
            self._sessions[sid] = (session, now)
        logger.info(f"viewer session {sid} opened at {session.active_index}/{len(session.images)}")
        return sid, session

    def get(self, sid: str) -> Optional[ViewerSession]:
        with self._lock:
            now = self._clock()
            self._prune(now)
            entry = self._sessions.get(sid)
            if entry is None:
                return None
            self._sessions[sid] = (entry[0], now)
            self._sessions.move_to_end(sid)
            return entry[0]

    def discard(self, sid: str) -> None:
        with self._lock:
            self._sessions.pop(sid, None)

    def __len__(self) -> int:
        with self._lock:
            self._prune(self._clock())
            return len(self._sessions)


viewer_sessions = ViewerRegistry()
