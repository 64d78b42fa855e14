"""In-memory store for interactive menu sessions.

Every button/list payload sent to a user gets a unique menu id. The store
keeps, per menu id, the payload (for resends) and the first option the
user picked, plus the last interactive payload sent to each conversation.

Both maps are bounded: entries expire ``ttl`` seconds after their last
write and the oldest entries are dropped once ``max_entries`` is reached.
Payload snapshots are deep-copied in and out.
"""

from __future__ import annotations

import copy
import threading
from collections import OrderedDict
from dataclasses import dataclass, replace
from typing import Any, Generic, TypeVar

from .time import Clock, monotonic

T = TypeVar("T")


@dataclass
class MenuSession:
    """State of one interactive menu instance."""

    menu_id: str
    payload: dict[str, Any] | None = None
    first_action_id: str | None = None
    first_label: str | None = None
    first_chosen_at: float | None = None
    notice_sent: bool = False
    changed_choices: int = 0

    @property
    def has_first_choice(self) -> bool:
        return self.first_action_id is not None

    def snapshot(self) -> MenuSession:
        return replace(self, payload=copy.deepcopy(self.payload))


class _BoundedMap(Generic[T]):
    """OrderedDict keyed by write recency with TTL and size cap. Not locked."""

    def __init__(self, ttl: float, max_entries: int, clock: Clock) -> None:
        self._ttl = ttl
        self._max_entries = max_entries
        self._clock = clock
        self._items: OrderedDict[str, tuple[float, T]] = OrderedDict()

    def get(self, key: str) -> T | None:
        self._purge()
        found = self._items.get(key)
        return found[1] if found else None

    def put(self, key: str, value: T) -> None:
        self._purge()
        self._items[key] = (self._clock(), value)
        self._items.move_to_end(key)
        while len(self._items) > self._max_entries:
            self._items.popitem(last=False)

    def touch(self, key: str) -> None:
        found = self._items.get(key)
        if found:
            self._items[key] = (self._clock(), found[1])
            self._items.move_to_end(key)

    def __len__(self) -> int:
        self._purge()
        return len(self._items)

    def _purge(self) -> None:
        cutoff = self._clock() - self._ttl
        while self._items:
            key, (written_at, _) = next(iter(self._items.items()))
            if written_at > cutoff:
                break
            del self._items[key]


class MenuStore:
    """Menu sessions and last-menu-per-conversation, safe to share across threads."""

    def __init__(
        self,
        ttl: float = 86400.0,
        max_entries: int = 10_000,
        clock: Clock = monotonic,
    ) -> None:
        if ttl <= 0 or max_entries <= 0:
            raise ValueError("ttl and max_entries must be positive")
        self._sessions: _BoundedMap[MenuSession] = _BoundedMap(ttl, max_entries, clock)
        self._last_menus: _BoundedMap[dict[str, Any]] = _BoundedMap(ttl, max_entries, clock)
        self._sessions_lock = threading.Lock()
        self._last_menus_lock = threading.Lock()

    # -- sessions --

    def create_session(self, menu_id: str, payload: dict[str, Any]) -> MenuSession:
        """Register a freshly sent menu. Replaces any session with the same id."""
        session = MenuSession(menu_id=menu_id, payload=copy.deepcopy(payload))
        with self._sessions_lock:
            self._sessions.put(menu_id, session)
            return session.snapshot()

    def get_session(self, menu_id: str) -> MenuSession | None:
        with self._sessions_lock:
            session = self._sessions.get(menu_id)
            return session.snapshot() if session else None

    def record_first_choice(
        self,
        menu_id: str,
        action_id: str,
        label: str | None,
        chosen_at: float,
    ) -> tuple[MenuSession, bool]:
        """Record the first option chosen for a menu, once.

        A reply to a menu id this store does not know (evicted, or sent
        before a restart) starts a session without payload, so repeated
        taps on that menu are still recognized.

        Returns:
            (session snapshot, True) if this call recorded the first choice.
            (session snapshot, False) if a first choice already existed.
        """
        with self._sessions_lock:
            session = self._sessions.get(menu_id)
            if session is None:
                session = MenuSession(menu_id=menu_id)
                self._sessions.put(menu_id, session)
            if session.has_first_choice:
                return session.snapshot(), False
            session.first_action_id = action_id
            session.first_label = label
            session.first_chosen_at = chosen_at
            self._sessions.touch(menu_id)
            return session.snapshot(), True

    def record_changed_choice(self, menu_id: str) -> None:
        """Count a reply that picked a different option than the first one."""
        with self._sessions_lock:
            session = self._sessions.get(menu_id)
            if session is not None:
                session.changed_choices += 1

    def mark_notice_sent(self, menu_id: str) -> bool:
        """Flip notice_sent to True.

        Returns:
            True only for the call that flipped the flag.
        """
        with self._sessions_lock:
            session = self._sessions.get(menu_id)
            if session is None or session.notice_sent:
                return False
            session.notice_sent = True
            self._sessions.touch(menu_id)
            return True

    # -- last menu per conversation --

    def remember_last_menu(self, conversation_key: str, payload: dict[str, Any]) -> None:
        with self._last_menus_lock:
            self._last_menus.put(conversation_key, copy.deepcopy(payload))

    def get_last_menu(self, conversation_key: str) -> dict[str, Any] | None:
        with self._last_menus_lock:
            payload = self._last_menus.get(conversation_key)
            return copy.deepcopy(payload) if payload is not None else None

    def stats(self) -> dict[str, int]:
        with self._sessions_lock:
            sessions = len(self._sessions)
        with self._last_menus_lock:
            last_menus = len(self._last_menus)
        return {"menu_sessions": sessions, "last_menus": last_menus}
