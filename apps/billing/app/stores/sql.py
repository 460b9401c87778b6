from __future__ import annotations

import os
import re
from typing import Dict, List, Optional

from sqlalchemy import BigInteger, ForeignKey, Integer, String, create_engine, delete, event, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import DeclarativeBase, Mapped, Session, mapped_column
from sqlalchemy.pool import StaticPool

from ..domain import BillDraft, LineItem
from ..errors import StorageError
from .base import BillRecord, Clock, MenuRecord, WriteGuard, business_clock, stamp


def _schema_from_env() -> Optional[str]:
    url = os.getenv("BILLING_DB_URL") or os.getenv("DB_URL") or ""
    if not url or url.startswith("sqlite"):
        return None
    return os.getenv("BILLING_DB_SCHEMA") or None


DB_SCHEMA = _schema_from_env()


def _table(name: str) -> str:
    return f"{DB_SCHEMA}.{name}" if DB_SCHEMA else name


class Base(DeclarativeBase):
    pass


class MenuRow(Base):
    __tablename__ = "menu"
    __table_args__ = ({"schema": DB_SCHEMA} if DB_SCHEMA else {})
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(150))
    price_cents: Mapped[int] = mapped_column(BigInteger)
    created_at: Mapped[str] = mapped_column(String(32))


class BillRow(Base):
    __tablename__ = "bills"
    __table_args__ = ({"schema": DB_SCHEMA} if DB_SCHEMA else {})
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    mobile: Mapped[str] = mapped_column(String(32))
    total_cents: Mapped[int] = mapped_column(BigInteger, default=0)
    # ISO-8601 text in the business timezone; reports match its date prefix.
    created_at: Mapped[str] = mapped_column(String(32), index=True)


class BillItemRow(Base):
    __tablename__ = "bill_items"
    __table_args__ = ({"schema": DB_SCHEMA} if DB_SCHEMA else {})
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    bill_id: Mapped[int] = mapped_column(Integer, ForeignKey(f"{_table('bills')}.id", ondelete="CASCADE"), index=True)
    line_index: Mapped[int] = mapped_column(Integer)
    item_name: Mapped[str] = mapped_column(String(150))
    price_cents: Mapped[int] = mapped_column(BigInteger)
    qty: Mapped[int] = mapped_column(Integer, default=1)


def _parse_id(raw: str) -> Optional[int]:
    text = str(raw).strip()
    if not re.fullmatch(r"[0-9]{1,18}", text):
        return None
    return int(text)


def _bill_record(row: BillRow, items: List[BillItemRow]) -> BillRecord:
    return BillRecord(
        id=str(row.id),
        customer=row.mobile,
        items=tuple(LineItem(name=it.item_name, price_cents=it.price_cents, quantity=it.qty) for it in items),
        total_cents=int(row.total_cents),
        created_at=row.created_at,
    )


def _menu_record(row: MenuRow) -> MenuRecord:
    return MenuRecord(id=str(row.id), name=row.name, price_cents=int(row.price_cents), created_at=row.created_at)


class SqlStore:
    """
    Relational strategy: `bills` header rows plus `bill_items` rows joined by
    foreign key. A bill and its items are written inside one transaction.
    """

    kind = "sql"

    def __init__(self, db_url: str, clock: Optional[Clock] = None, lock_timeout_secs: float = 15.0):
        kwargs: dict = {"future": True}
        if db_url.startswith("sqlite"):
            # Waiting on a locked database file is bounded like any store call.
            kwargs["connect_args"] = {"check_same_thread": False, "timeout": lock_timeout_secs}
            if ":memory:" in db_url or db_url in ("sqlite://", "sqlite+pysqlite://"):
                kwargs["poolclass"] = StaticPool
        self.db_url = db_url
        self.engine = create_engine(db_url, **kwargs)
        self.clock = clock or business_clock()
        if db_url.startswith("sqlite"):
            event.listen(self.engine, "connect", _enable_sqlite_fks)

    def bootstrap(self) -> None:
        try:
            Base.metadata.create_all(self.engine)
        except SQLAlchemyError as e:
            raise StorageError(f"schema bootstrap failed: {e.__class__.__name__}") from e

    # Bills

    def insert_bill(self, draft: BillDraft, total_cents: int, guard: Optional[WriteGuard] = None) -> BillRecord:
        try:
            with Session(self.engine) as s, s.begin():
                header = BillRow(mobile=draft.customer, total_cents=total_cents, created_at=stamp(self.clock))
                s.add(header)
                s.flush()
                rows = [
                    BillItemRow(
                        bill_id=header.id,
                        line_index=idx,
                        item_name=it.name,
                        price_cents=it.price_cents,
                        qty=it.quantity,
                    )
                    for idx, it in enumerate(draft.items)
                ]
                s.add_all(rows)
                s.flush()
                if guard is not None and not guard.claim():
                    # Raising inside the transaction rolls it back.
                    raise StorageError("bill insert abandoned")
                return _bill_record(header, rows)
        except SQLAlchemyError as e:
            raise StorageError(f"bill insert failed: {e.__class__.__name__}") from e

    def get_bill(self, bill_id: str) -> Optional[BillRecord]:
        bid = _parse_id(bill_id)
        if bid is None:
            return None
        try:
            with Session(self.engine) as s:
                row = s.get(BillRow, bid)
                if row is None:
                    return None
                items = s.execute(
                    select(BillItemRow).where(BillItemRow.bill_id == bid).order_by(BillItemRow.line_index.asc())
                ).scalars().all()
                return _bill_record(row, list(items))
        except SQLAlchemyError as e:
            raise StorageError(f"bill read failed: {e.__class__.__name__}") from e

    def scan_bills(self) -> List[BillRecord]:
        try:
            with Session(self.engine) as s:
                bills = s.execute(select(BillRow).order_by(BillRow.id.asc())).scalars().all()
                items = s.execute(
                    select(BillItemRow).order_by(BillItemRow.bill_id.asc(), BillItemRow.line_index.asc())
                ).scalars().all()
        except SQLAlchemyError as e:
            raise StorageError(f"bill scan failed: {e.__class__.__name__}") from e
        by_bill: Dict[int, List[BillItemRow]] = {}
        for it in items:
            by_bill.setdefault(it.bill_id, []).append(it)
        return [_bill_record(b, by_bill.get(b.id, [])) for b in bills]

    # Menu

    def list_menu(self) -> List[MenuRecord]:
        try:
            with Session(self.engine) as s:
                rows = s.execute(select(MenuRow).order_by(MenuRow.id.desc())).scalars().all()
                return [_menu_record(r) for r in rows]
        except SQLAlchemyError as e:
            raise StorageError(f"menu list failed: {e.__class__.__name__}") from e

    def add_menu_item(self, name: str, price_cents: int) -> MenuRecord:
        try:
            with Session(self.engine) as s, s.begin():
                row = MenuRow(name=name, price_cents=price_cents, created_at=stamp(self.clock))
                s.add(row)
                s.flush()
                return _menu_record(row)
        except SQLAlchemyError as e:
            raise StorageError(f"menu insert failed: {e.__class__.__name__}") from e

    def update_menu_item(self, item_id: str, name: Optional[str], price_cents: Optional[int]) -> Optional[MenuRecord]:
        mid = _parse_id(item_id)
        if mid is None:
            return None
        try:
            with Session(self.engine) as s, s.begin():
                row = s.get(MenuRow, mid)
                if row is None:
                    return None
                if name is not None:
                    row.name = name
                if price_cents is not None:
                    row.price_cents = price_cents
                s.flush()
                return _menu_record(row)
        except SQLAlchemyError as e:
            raise StorageError(f"menu update failed: {e.__class__.__name__}") from e

    def delete_menu_item(self, item_id: str) -> bool:
        mid = _parse_id(item_id)
        if mid is None:
            return False
        try:
            with Session(self.engine) as s, s.begin():
                res = s.execute(delete(MenuRow).where(MenuRow.id == mid))
                return bool(res.rowcount)
        except SQLAlchemyError as e:
            raise StorageError(f"menu delete failed: {e.__class__.__name__}") from e


def _enable_sqlite_fks(dbapi_conn, _record):
    cur = dbapi_conn.cursor()
    try:
        cur.execute("PRAGMA foreign_keys=ON")
    finally:
        cur.close()
