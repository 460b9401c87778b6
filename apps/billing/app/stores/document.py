from __future__ import annotations

import json
import os
import threading
import uuid
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

from ..domain import BillDraft, LineItem
from ..errors import StorageError
from .base import BillRecord, Clock, MenuRecord, WriteGuard, business_clock, stamp


def new_token() -> str:
    return uuid.uuid4().hex


def _bill_record(doc: Dict[str, Any]) -> BillRecord:
    return BillRecord(
        id=str(doc["id"]),
        customer=str(doc["mobile"]),
        items=tuple(
            LineItem(name=it["name"], price_cents=int(it["price_cents"]), quantity=int(it.get("qty", 1)))
            for it in doc.get("items", [])
        ),
        total_cents=int(doc.get("total_cents", 0)),
        created_at=str(doc["created_at"]),
    )


def _menu_record(doc: Dict[str, Any]) -> MenuRecord:
    return MenuRecord(
        id=str(doc["id"]),
        name=doc["name"],
        price_cents=int(doc["price_cents"]),
        created_at=str(doc.get("created_at", "")),
    )


class DocumentStore:
    """
    Document strategy: the whole dataset lives in one JSON file,
    `{"menu": [...], "bills": [...]}`, with line items nested in each bill.

    The in-memory snapshot is owned by the store. Every mutation takes the
    writer lock, builds a new snapshot, writes it to a temp file that is then
    renamed over the data file, and only then swaps it in. A failed write
    leaves both disk and memory as they were.
    """

    kind = "document"

    def __init__(self, path: str | Path, clock: Optional[Clock] = None, new_id: Optional[Callable[[], str]] = None):
        self.path = Path(path)
        self.clock = clock or business_clock()
        self.new_id = new_id or new_token
        self._lock = threading.Lock()
        self._data: Optional[Dict[str, List[dict]]] = None

    def bootstrap(self) -> None:
        with self._lock:
            data = self._loaded()
            if not self.path.exists():
                self._flush(data)

    def _loaded(self) -> Dict[str, List[dict]]:
        # Caller holds the lock.
        if self._data is None:
            self._data = self._read_file()
        return self._data

    def _read_file(self) -> Dict[str, List[dict]]:
        if not self.path.exists():
            return {"menu": [], "bills": []}
        try:
            raw = json.loads(self.path.read_text(encoding="utf-8") or "{}")
        except (OSError, ValueError) as e:
            raise StorageError(f"cannot load {self.path.name}: {e.__class__.__name__}") from e
        if not isinstance(raw, dict):
            raise StorageError(f"cannot load {self.path.name}: not an object")
        return {"menu": list(raw.get("menu") or []), "bills": list(raw.get("bills") or [])}

    def _flush(self, data: Dict[str, List[dict]]) -> None:
        tmp = self.path.with_name(self.path.name + ".tmp")
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with open(tmp, "w", encoding="utf-8") as f:
                json.dump(data, f, ensure_ascii=False, indent=2)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp, self.path)
        except OSError as e:
            raise StorageError(f"cannot write {self.path.name}: {e.__class__.__name__}") from e

    def _commit(self, data: Dict[str, List[dict]]) -> None:
        self._flush(data)
        self._data = data

    # Bills

    def insert_bill(self, draft: BillDraft, total_cents: int, guard: Optional[WriteGuard] = None) -> BillRecord:
        with self._lock:
            data = self._loaded()
            bill_id = self.new_id()
            if any(str(b.get("id")) == bill_id for b in data["bills"]):
                raise StorageError("invoice id collision")
            doc = {
                "id": bill_id,
                "mobile": draft.customer,
                "items": [{"name": it.name, "price_cents": it.price_cents, "qty": it.quantity} for it in draft.items],
                "total_cents": total_cents,
                "created_at": stamp(self.clock),
            }
            if guard is not None and not guard.claim():
                raise StorageError("bill insert abandoned")
            self._commit({"menu": data["menu"], "bills": data["bills"] + [doc]})
            return _bill_record(doc)

    def get_bill(self, bill_id: str) -> Optional[BillRecord]:
        key = str(bill_id).strip()
        with self._lock:
            for doc in self._loaded()["bills"]:
                if str(doc.get("id")) == key:
                    return _bill_record(doc)
        return None

    def scan_bills(self) -> List[BillRecord]:
        with self._lock:
            bills = list(self._loaded()["bills"])
        return [_bill_record(doc) for doc in bills]

    # Menu

    def list_menu(self) -> List[MenuRecord]:
        with self._lock:
            menu = list(self._loaded()["menu"])
        return [_menu_record(doc) for doc in reversed(menu)]

    def add_menu_item(self, name: str, price_cents: int) -> MenuRecord:
        with self._lock:
            data = self._loaded()
            doc = {"id": self.new_id(), "name": name, "price_cents": price_cents, "created_at": stamp(self.clock)}
            self._commit({"menu": data["menu"] + [doc], "bills": data["bills"]})
            return _menu_record(doc)

    def update_menu_item(self, item_id: str, name: Optional[str], price_cents: Optional[int]) -> Optional[MenuRecord]:
        key = str(item_id).strip()
        with self._lock:
            data = self._loaded()
            menu = list(data["menu"])
            for pos, doc in enumerate(menu):
                if str(doc.get("id")) != key:
                    continue
                updated = dict(doc)
                if name is not None:
                    updated["name"] = name
                if price_cents is not None:
                    updated["price_cents"] = price_cents
                menu[pos] = updated
                self._commit({"menu": menu, "bills": data["bills"]})
                return _menu_record(updated)
        return None

    def delete_menu_item(self, item_id: str) -> bool:
        key = str(item_id).strip()
        with self._lock:
            data = self._loaded()
            menu = [doc for doc in data["menu"] if str(doc.get("id")) != key]
            if len(menu) == len(data["menu"]):
                return False
            self._commit({"menu": menu, "bills": data["bills"]})
            return True
