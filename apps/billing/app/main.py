from __future__ import annotations

import logging
from typing import Any, List, Optional

from fastapi import APIRouter, Depends, FastAPI, Query, Request
from fastapi.responses import JSONResponse, PlainTextResponse
from pydantic import AliasChoices, BaseModel, Field

from pos_shared import RequestIDMiddleware, add_standard_health, configure_cors, get_request_id, setup_json_logging, startup_lifespan

from .config import Settings, build_store
from .engine import BillingEngine, DailyReport
from .errors import NotFound, StorageError, Timeout, ValidationError
from .menu import MenuCatalog
from .money import cents_to_amount
from .stores.base import BillRecord, MenuRecord

log = logging.getLogger("billing.http")

router = APIRouter(prefix="/api")

# Caller-facing text for storage failures; internal detail only goes to logs.
_STORAGE_MESSAGES = {
    ("POST", "/api/bill"): "Failed to create bill",
}


# Schemas
class BillCreate(BaseModel):
    # Loosely typed; domain.validate_bill rejects with caller-facing messages.
    customer: Any = Field(default=None, validation_alias=AliasChoices("customer", "mobile"))
    items: Any = None
    total: Any = None


class BillCreated(BaseModel):
    invoiceId: str
    message: str = "Bill created"


class BillItemOut(BaseModel):
    name: str
    price: float
    price_cents: int
    quantity: int
    # Original row field names, still read by older tills.
    item_name: str
    qty: int


class BillOut(BaseModel):
    id: str
    invoiceId: str
    customer: str
    mobile: str  # original field name
    total: float
    total_cents: int
    created_at: str
    items: List[BillItemOut]

    @classmethod
    def from_record(cls, rec: BillRecord) -> "BillOut":
        return cls(
            id=rec.id,
            invoiceId=rec.id,
            customer=rec.customer,
            mobile=rec.customer,
            total=cents_to_amount(rec.total_cents),
            total_cents=rec.total_cents,
            created_at=rec.created_at,
            items=[
                BillItemOut(
                    name=it.name,
                    item_name=it.name,
                    price=cents_to_amount(it.price_cents),
                    price_cents=it.price_cents,
                    quantity=it.quantity,
                    qty=it.quantity,
                )
                for it in rec.items
            ],
        )


class ReportOut(BaseModel):
    date: Optional[str]
    count: int
    totalSales: float
    total_sales_cents: int
    bills: List[BillOut]

    @classmethod
    def from_report(cls, rep: DailyReport) -> "ReportOut":
        return cls(
            date=rep.date,
            count=rep.count,
            totalSales=cents_to_amount(rep.total_sales_cents),
            total_sales_cents=rep.total_sales_cents,
            bills=[BillOut.from_record(b) for b in rep.bills],
        )


class MenuItemIn(BaseModel):
    name: Any = None
    price: Any = None


class MenuItemOut(BaseModel):
    id: str
    name: str
    price: float
    price_cents: int
    created_at: str

    @classmethod
    def from_record(cls, rec: MenuRecord) -> "MenuItemOut":
        return cls(
            id=rec.id,
            name=rec.name,
            price=cents_to_amount(rec.price_cents),
            price_cents=rec.price_cents,
            created_at=rec.created_at,
        )


class MenuItemSaved(BaseModel):
    message: str
    item: MenuItemOut


def get_engine(request: Request) -> BillingEngine:
    return request.app.state.billing


def get_catalog(request: Request) -> MenuCatalog:
    return request.app.state.catalog


# Menu
@router.get("/menu", response_model=List[MenuItemOut])
async def list_menu(catalog: MenuCatalog = Depends(get_catalog)):
    return [MenuItemOut.from_record(r) for r in await catalog.list_items()]


@router.post("/menu", response_model=MenuItemSaved)
async def create_menu_item(req: MenuItemIn, catalog: MenuCatalog = Depends(get_catalog)):
    rec = await catalog.create_item(req.name, req.price)
    return MenuItemSaved(message="Item saved", item=MenuItemOut.from_record(rec))


@router.put("/menu/{item_id}", response_model=MenuItemSaved)
async def update_menu_item(item_id: str, req: MenuItemIn, catalog: MenuCatalog = Depends(get_catalog)):
    rec = await catalog.update_item(item_id, name=req.name, price=req.price)
    return MenuItemSaved(message="Item updated", item=MenuItemOut.from_record(rec))


@router.delete("/menu/{item_id}")
async def delete_menu_item(item_id: str, catalog: MenuCatalog = Depends(get_catalog)):
    await catalog.delete_item(item_id)
    return {"message": "Item deleted"}


# Bills
@router.post("/bill", response_model=BillCreated)
async def create_bill(req: BillCreate, engine: BillingEngine = Depends(get_engine)):
    rec = await engine.create_bill(req.customer, req.items, req.total)
    return BillCreated(invoiceId=rec.id)


@router.get("/bill/{invoice_id}", response_model=BillOut)
async def get_bill(invoice_id: str, engine: BillingEngine = Depends(get_engine)):
    return BillOut.from_record(await engine.get_bill(invoice_id))


@router.get("/report", response_model=ReportOut)
async def report(date: Optional[str] = Query(default=None), engine: BillingEngine = Depends(get_engine)):
    return ReportOut.from_report(await engine.report(date))


def _error(request: Request, status_code: int, message: str, with_rid: bool = False) -> JSONResponse:
    payload: dict[str, Any] = {"message": message}
    rid = get_request_id() or getattr(request.state, "request_id", "")
    if with_rid and rid:
        payload["request_id"] = rid
    return JSONResponse(status_code=status_code, content=payload)


def _install_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(ValidationError)
    async def _validation(request: Request, exc: ValidationError):
        return _error(request, 400, exc.message)

    @app.exception_handler(NotFound)
    async def _not_found(request: Request, exc: NotFound):
        return _error(request, 404, exc.message)

    @app.exception_handler(StorageError)
    async def _storage(request: Request, exc: StorageError):
        # Already logged with context by the engine.
        kind = "timeout" if isinstance(exc, Timeout) else "failure"
        log.error("request failed on storage %s", kind, extra={"status_code": 500})
        message = _STORAGE_MESSAGES.get((request.method, request.url.path), "Storage unavailable")
        return _error(request, 500, message, with_rid=True)

    @app.exception_handler(Exception)
    async def _unhandled(request: Request, exc: Exception):
        log.exception("unhandled exception", extra={"status_code": 500})
        return _error(request, 500, "internal error", with_rid=True)


def create_app(
    settings: Optional[Settings] = None,
    engine: Optional[BillingEngine] = None,
    catalog: Optional[MenuCatalog] = None,
) -> FastAPI:
    """
    Build the billing API. Without an injected engine the store is chosen by
    `settings.store`; an injected engine's store also backs the menu unless a
    catalog is given.
    """
    settings = settings or Settings.from_env()
    if engine is None:
        engine = BillingEngine(
            build_store(settings),
            timeout_secs=settings.store_timeout_secs,
            total_policy=settings.total_policy,
            mobile_digits=settings.mobile_digits,
            strict_mobile=settings.strict_mobile,
        )
    if catalog is None:
        catalog = MenuCatalog(engine.store, timeout_secs=engine.timeout_secs)  # type: ignore[arg-type]

    def _bootstrap():
        engine.store.bootstrap()
        log.info("store ready", extra={"store": engine.store.kind})

    app = FastAPI(title="Restaurant POS Billing", version="0.1.0", lifespan=startup_lifespan(_bootstrap))
    app.state.settings = settings
    app.state.billing = engine
    app.state.catalog = catalog
    app.add_middleware(RequestIDMiddleware)
    configure_cors(app, settings.allowed_origins)
    add_standard_health(app, extra=lambda: {"store": engine.store.kind})
    _install_error_handlers(app)

    @app.get("/", response_class=PlainTextResponse)
    def root():
        return f"Restaurant POS Backend running ({engine.store.kind})"

    app.include_router(router)
    return app


setup_json_logging()
app = create_app()
