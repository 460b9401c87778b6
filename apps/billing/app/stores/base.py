"""
Persistence contract for bills and the menu catalog.

Both strategies (relational and document file) implement `BillStore` and
`CatalogStore`. Methods are synchronous and may block; the engine runs them
in worker threads under a timeout.
"""
from __future__ import annotations

import threading
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, List, Optional, Protocol
from zoneinfo import ZoneInfo

from ..domain import BillDraft, LineItem

Clock = Callable[[], datetime]


def business_clock(tz_name: str = "UTC") -> Clock:
    tz = ZoneInfo(tz_name)

    def _now() -> datetime:
        return datetime.now(tz)

    return _now


def stamp(clock: Clock) -> str:
    # Reports match on the date prefix of this text.
    return clock().isoformat(timespec="seconds")


@dataclass(frozen=True)
class BillRecord:
    id: str
    customer: str
    items: tuple[LineItem, ...]
    total_cents: int
    created_at: str


@dataclass(frozen=True)
class MenuRecord:
    id: str
    name: str
    price_cents: int
    created_at: str


class WriteGuard:
    """
    One-shot decision between a store making a write visible and the engine
    giving up on it. The store calls `claim()` right before commit; the engine
    calls `abandon()` when its timeout fires. Whichever runs first wins, and
    the loser gets False.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._state: Optional[str] = None

    def _settle(self, state: str) -> bool:
        with self._lock:
            if self._state is None:
                self._state = state
            return self._state == state

    def claim(self) -> bool:
        return self._settle("claimed")

    def abandon(self) -> bool:
        return self._settle("abandoned")


class BillStore(Protocol):
    kind: str

    def bootstrap(self) -> None: ...

    def insert_bill(self, draft: BillDraft, total_cents: int, guard: Optional[WriteGuard] = None) -> BillRecord:
        """
        Persist header and every line item as one unit, or nothing. When a
        guard is given and `guard.claim()` fails, nothing is committed.
        """
        ...

    def get_bill(self, bill_id: str) -> Optional[BillRecord]: ...

    def scan_bills(self) -> List[BillRecord]:
        """All bills in creation order."""
        ...


class CatalogStore(Protocol):
    def list_menu(self) -> List[MenuRecord]:
        """Newest first."""
        ...

    def add_menu_item(self, name: str, price_cents: int) -> MenuRecord: ...

    def update_menu_item(
        self, item_id: str, name: Optional[str], price_cents: Optional[int]
    ) -> Optional[MenuRecord]: ...

    def delete_menu_item(self, item_id: str) -> bool: ...
