"""
Bill validation and total resolution.

Everything here is a pure function of its input: no store access, no clock.
The engine calls `validate_bill` before any write is attempted, so a
rejected request never reaches persistence.
"""
from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from typing import Any, List, Mapping, Optional

from .errors import ValidationError
from .money import to_cents

# Largest values the bill tables can hold (BIGINT cents, INTEGER quantity).
MAX_CENTS = 2**63 - 1
MAX_QUANTITY = 2**31 - 1


class TotalPolicy(str, Enum):
    TRUST = "trust"          # caller total stored as-is, computed only when absent
    RECOMPUTE = "recompute"  # caller total ignored
    VERIFY = "verify"        # caller total must equal the line-item sum


@dataclass(frozen=True)
class LineItem:
    name: str
    price_cents: int
    quantity: int = 1

    @property
    def amount_cents(self) -> int:
        return self.price_cents * self.quantity


@dataclass(frozen=True)
class BillDraft:
    customer: str
    items: tuple[LineItem, ...]
    total_cents: Optional[int] = None  # as supplied by the caller


def _parse_customer(customer: Any, mobile_digits: int, strict: bool) -> str:
    if customer is None or isinstance(customer, bool) or not isinstance(customer, (str, int)):
        raise ValidationError("customer identifier required")
    text = str(customer).strip()
    if not text:
        raise ValidationError("customer identifier required")
    if strict and not re.fullmatch(r"[0-9]{%d}" % mobile_digits, text):
        raise ValidationError("customer identifier required")
    return text


def _parse_quantity(raw: Any, pos: int) -> int:
    if raw is None:
        return 1
    qty: Optional[int] = None
    if isinstance(raw, int) and not isinstance(raw, bool):
        qty = raw
    elif isinstance(raw, float) and raw.is_integer():
        qty = int(raw)
    elif isinstance(raw, str) and re.fullmatch(r"\s*[0-9]+\s*", raw):
        qty = int(raw)
    if qty is None or qty <= 0 or qty > MAX_QUANTITY:
        raise ValidationError(f"item {pos}: quantity must be a positive integer")
    return qty


def _parse_item(raw: Any, pos: int) -> LineItem:
    if not isinstance(raw, Mapping):
        raise ValidationError(f"item {pos}: name required")
    name = raw.get("name")
    if not isinstance(name, str) or not name.strip():
        raise ValidationError(f"item {pos}: name required")
    price_cents = to_cents(raw.get("price"))
    if price_cents is None or not 0 <= price_cents <= MAX_CENTS:
        raise ValidationError(f"item {pos}: price must be a non-negative number")
    qty_raw = raw.get("quantity", raw.get("qty"))
    return LineItem(name=name.strip(), price_cents=price_cents, quantity=_parse_quantity(qty_raw, pos))


def validate_bill(
    customer: Any,
    items: Any,
    total: Any = None,
    *,
    mobile_digits: int = 10,
    strict: bool = True,
) -> BillDraft:
    """
    Check a bill-creation request and normalise it into a `BillDraft`.

    Raises ValidationError with a caller-facing reason on the first problem
    found: customer first, then the item list, then each item in order, then
    the optional total.
    """
    cust = _parse_customer(customer, mobile_digits, strict)
    if not isinstance(items, (list, tuple)) or not items:
        raise ValidationError("items required")
    lines = tuple(_parse_item(raw, pos) for pos, raw in enumerate(items, start=1))
    total_cents: Optional[int] = None
    if total is not None:
        total_cents = to_cents(total)
        if total_cents is None or not 0 <= total_cents <= MAX_CENTS:
            raise ValidationError("total must be a non-negative number")
    return BillDraft(customer=cust, items=lines, total_cents=total_cents)


def line_items_total(items: List[LineItem] | tuple[LineItem, ...]) -> int:
    return sum(it.amount_cents for it in items)


def resolve_total(draft: BillDraft, policy: TotalPolicy = TotalPolicy.TRUST) -> int:
    """Authoritative total in cents for `draft` under `policy`."""
    computed = line_items_total(draft.items)
    if computed > MAX_CENTS:
        raise ValidationError("total exceeds the maximum amount")
    if draft.total_cents is None or policy is TotalPolicy.RECOMPUTE:
        return computed
    if policy is TotalPolicy.VERIFY and draft.total_cents != computed:
        raise ValidationError("total does not match line items")
    return draft.total_cents
