from __future__ import annotations

from typing import Any, List, Optional

from .engine import call_store
from .errors import NotFound, ValidationError
from .domain import MAX_CENTS
from .money import to_cents
from .stores.base import CatalogStore, MenuRecord


def _clean_name(name: Any) -> str:
    if name is None or not str(name).strip():
        raise ValidationError("Name is required")
    return str(name).strip()


def _clean_price(price: Any) -> int:
    cents = to_cents(price)
    if cents is None or not 0 < cents <= MAX_CENTS:
        raise ValidationError("Valid price is required")
    return cents


class MenuCatalog:
    """Menu CRUD. Bills snapshot name and price, so edits never touch them."""

    def __init__(self, store: CatalogStore, *, timeout_secs: float = 5.0, kind: str = ""):
        self.store = store
        self.timeout_secs = timeout_secs
        self.kind = kind or getattr(store, "kind", "")

    async def _call(self, fn, *args, op: str):
        return await call_store(fn, *args, op=op, store=self.kind, timeout_secs=self.timeout_secs)

    async def list_items(self) -> List[MenuRecord]:
        return await self._call(self.store.list_menu, op="menu_list")

    async def create_item(self, name: Any, price: Any) -> MenuRecord:
        clean_name = _clean_name(name)
        cents = _clean_price(price)
        return await self._call(self.store.add_menu_item, clean_name, cents, op="menu_create")

    async def update_item(self, item_id: str, name: Any = None, price: Any = None) -> MenuRecord:
        new_name: Optional[str] = _clean_name(name) if name is not None else None
        new_cents: Optional[int] = _clean_price(price) if price is not None else None
        rec = await self._call(self.store.update_menu_item, str(item_id), new_name, new_cents, op="menu_update")
        if rec is None:
            raise NotFound("Item not found")
        return rec

    async def delete_item(self, item_id: str) -> bool:
        return await self._call(self.store.delete_menu_item, str(item_id), op="menu_delete")
