from __future__ import annotations

import asyncio
import functools
import logging
import re
from dataclasses import dataclass
from datetime import date as Date
from typing import Any, Callable, List, Optional, TypeVar

from .domain import TotalPolicy, resolve_total, validate_bill
from .errors import NotFound, StorageError, Timeout, ValidationError
from .stores.base import BillRecord, BillStore, WriteGuard

log = logging.getLogger("billing.engine")

T = TypeVar("T")

_DATE_RE = re.compile(r"[0-9]{4}-[0-9]{2}-[0-9]{2}")


def _parse_report_date(raw: Optional[str]) -> Optional[str]:
    text = (raw or "").strip()
    if not text:
        return None
    if _DATE_RE.fullmatch(text):
        try:
            Date.fromisoformat(text)
            return text
        except ValueError:
            pass
    raise ValidationError("date must be YYYY-MM-DD")


@dataclass(frozen=True)
class DailyReport:
    date: Optional[str]
    bills: List[BillRecord]
    total_sales_cents: int

    @property
    def count(self) -> int:
        return len(self.bills)


def _retrieve(task: asyncio.Future) -> None:
    # Abandoned calls finish unobserved; consume their outcome.
    if not task.cancelled():
        task.exception()


async def call_store(
    fn: Callable[..., T],
    *args: Any,
    op: str,
    store: str,
    timeout_secs: float,
    guard: Optional[WriteGuard] = None,
    **extra: Any,
) -> T:
    """
    Run a blocking store call in a worker thread, bounded by `timeout_secs`.

    On expiry the caller gets Timeout and the worker thread is left to finish
    on its own. A write passed a `guard` is abandoned first, so it can never
    become visible after Timeout; if the store has already claimed the guard
    the commit is under way and its outcome is awaited instead. Store failures
    are logged here and re-raised as StorageError.
    """
    ctx = {"op": op, "store": store, **extra}
    task = asyncio.ensure_future(asyncio.to_thread(fn, *args))
    done, _ = await asyncio.wait({task}, timeout=timeout_secs)
    if not done:
        if guard is None or guard.abandon():
            task.add_done_callback(_retrieve)
            log.warning("storage timeout", extra={**ctx, "timeout_secs": timeout_secs})
            raise Timeout(f"{op} exceeded {timeout_secs}s")
        log.warning("storage slow, commit already under way", extra={**ctx, "timeout_secs": timeout_secs})
    try:
        return await task
    except StorageError:
        log.exception("storage failure", extra=ctx)
        raise
    except Exception as e:
        log.exception("unexpected storage failure", extra=ctx)
        raise StorageError(f"{op} failed: {e.__class__.__name__}") from e


class BillingEngine:
    """
    Stateless bill orchestration over a `BillStore`: validate, resolve the
    total, write once, read back by invoice id, and aggregate reports.
    """

    def __init__(
        self,
        store: BillStore,
        *,
        timeout_secs: float = 5.0,
        total_policy: TotalPolicy = TotalPolicy.TRUST,
        mobile_digits: int = 10,
        strict_mobile: bool = True,
    ):
        self.store = store
        self.timeout_secs = timeout_secs
        self.total_policy = total_policy
        self.mobile_digits = mobile_digits
        self.strict_mobile = strict_mobile

    async def _call(self, fn: Callable[..., T], *args: Any, op: str, **extra: Any) -> T:
        return await call_store(
            fn, *args, op=op, store=self.store.kind, timeout_secs=self.timeout_secs, **extra
        )

    async def create_bill(self, customer: Any, items: Any, total: Any = None) -> BillRecord:
        draft = validate_bill(
            customer,
            items,
            total,
            mobile_digits=self.mobile_digits,
            strict=self.strict_mobile,
        )
        total_cents = resolve_total(draft, self.total_policy)
        guard = WriteGuard()
        rec = await self._call(
            functools.partial(self.store.insert_bill, draft, total_cents, guard=guard),
            op="create_bill",
            guard=guard,
            items=len(draft.items),
        )
        log.info("bill created", extra={"op": "create_bill", "invoice_id": rec.id, "items": len(rec.items)})
        return rec

    async def get_bill(self, invoice_id: str) -> BillRecord:
        rec = await self._call(self.store.get_bill, str(invoice_id), op="get_bill")
        if rec is None:
            raise NotFound("invoice not found")
        return rec

    async def report(self, date: Optional[str] = None) -> DailyReport:
        date = _parse_report_date(date)
        bills = await self._call(self.store.scan_bills, op="report")
        if date is not None:
            bills = [b for b in bills if b.created_at.startswith(date)]
        return DailyReport(date=date, bills=bills, total_sales_cents=sum(b.total_cents for b in bills))
