from __future__ import annotations

import logging
from decimal import Decimal

import pydantic
from fastapi import APIRouter, Depends, Query, status
from sqlalchemy import select
from sqlalchemy.orm import Session

from cargo_api.access import Eq, PageParams, ScopedQuery, Search, TenantContext, get_visible_or_404
from cargo_api.db.session import atomic, get_db
from cargo_api.errors import ConflictError
from cargo_api.models.shipping import Consignment, Customer
from cargo_api.schemas.common import ApiResponse, envelope
from cargo_api.schemas.shipping import (
    ConsignmentOut,
    CustomerCreate,
    CustomerDetailOut,
    CustomerImportIn,
    CustomerImportOut,
    CustomerOut,
    CustomerType,
    CustomerUpdate,
)
from cargo_api.security.dependencies import get_page_params, get_tenant_context

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/customers", tags=["customers"])

SEARCH_COLUMNS = (Customer.name, Customer.phone, Customer.email)


def _by_phone(db: Session, ctx: TenantContext, phone: str) -> Customer | None:
    return db.scalars(select(Customer).where(Customer.tenant_id == ctx.tenant_id, Customer.phone == phone)).first()


def _columns(values: dict) -> dict:
    if values.get("credit_limit") is not None:
        values["credit_limit"] = Decimal(str(values["credit_limit"]))
    if values.get("email") is not None:
        values["email"] = str(values["email"])
    return values


@router.get("", response_model=ApiResponse[list[CustomerOut]])
def list_customers(
    search: str | None = None,
    customer_type: CustomerType | None = None,
    is_active: bool | None = None,
    params: PageParams = Depends(get_page_params),
    db: Session = Depends(get_db),
    ctx: TenantContext = Depends(get_tenant_context),
) -> dict:
    query = (
        ScopedQuery(Customer, ctx, "customer")
        .where(Search(SEARCH_COLUMNS, search), Eq(Customer.customer_type, customer_type), Eq(Customer.is_active, is_active))
        .order_by(Customer.name.asc())
    )
    page = query.page(db, params)
    return envelope(page.items, page=page)


@router.get("/search", response_model=ApiResponse[list[CustomerOut]])
def search_customers(
    q: str = Query(default=""),
    limit: int = Query(default=10, ge=1, le=50),
    db: Session = Depends(get_db),
    ctx: TenantContext = Depends(get_tenant_context),
) -> dict:
    """Autocomplete for the booking form; active customers only."""

    if len(q.strip()) < 2:
        return envelope([])
    query = (
        ScopedQuery(Customer, ctx, "customer")
        .where(Search((Customer.name, Customer.phone), q), Eq(Customer.is_active, True))
        .order_by(Customer.name.asc())
    )
    return envelope(query.all(db, limit=limit))


@router.get("/{id}", response_model=ApiResponse[CustomerDetailOut])
def get_customer(id: str, db: Session = Depends(get_db), ctx: TenantContext = Depends(get_tenant_context)) -> dict:
    customer = get_visible_or_404(db, ctx, "customer", Customer.id == id)

    # Customers are tenant-wide, their bookings are not.
    bookings = (
        ScopedQuery(Consignment, ctx, "consignment")
        .where(Eq(Consignment.consignor_id, customer.id))
        .order_by(Consignment.created_at.desc())
        .all(db, limit=10)
    )
    detail = CustomerDetailOut.model_validate(customer)
    detail = detail.model_copy(update={"recent_bookings": [ConsignmentOut.model_validate(c) for c in bookings]})
    return envelope(detail)


@router.post("", response_model=ApiResponse[CustomerOut], status_code=status.HTTP_201_CREATED)
def create_customer(
    body: CustomerCreate,
    db: Session = Depends(get_db),
    ctx: TenantContext = Depends(get_tenant_context),
) -> dict:
    with atomic(db):
        if _by_phone(db, ctx, body.phone) is not None:
            raise ConflictError("Customer with this phone number already exists")
        customer = Customer(tenant_id=ctx.tenant_id, created_by=ctx.user_id, **_columns(body.model_dump()))
        db.add(customer)
        db.flush()

    logger.info("Customer created id=%s tenant=%s", customer.id, ctx.tenant_id)
    return envelope(customer, message="Customer created successfully")


@router.post("/import", response_model=ApiResponse[CustomerImportOut])
def import_customers(
    body: CustomerImportIn,
    db: Session = Depends(get_db),
    ctx: TenantContext = Depends(get_tenant_context),
) -> dict:
    """
    Bulk upsert keyed by phone number.

    Bad rows are reported by (1-based) position and skipped; good rows are
    written together in one transaction.
    """

    created = updated = 0
    errors = []
    with atomic(db):
        for row_number, raw in enumerate(body.customers, start=1):
            try:
                row = CustomerCreate.model_validate(raw)
            except pydantic.ValidationError as e:
                first = e.errors()[0]
                field = ".".join(str(part) for part in first.get("loc", ()))
                errors.append({"row": row_number, "error": f"{field}: {first.get('msg')}"})
                continue

            values = _columns(row.model_dump(exclude_unset=True))
            existing = _by_phone(db, ctx, row.phone)
            if existing is None:
                db.add(Customer(tenant_id=ctx.tenant_id, created_by=ctx.user_id, **values))
                created += 1
            else:
                for field, value in values.items():
                    setattr(existing, field, value)
                updated += 1
            db.flush()

    logger.info("Customer import tenant=%s created=%s updated=%s errors=%s", ctx.tenant_id, created, updated, len(errors))
    return envelope({"created": created, "updated": updated, "errors": errors})


@router.patch("/{id}", response_model=ApiResponse[CustomerOut])
def update_customer(
    id: str,
    body: CustomerUpdate,
    db: Session = Depends(get_db),
    ctx: TenantContext = Depends(get_tenant_context),
) -> dict:
    changes = _columns(body.model_dump(exclude_unset=True))
    with atomic(db):
        customer = get_visible_or_404(db, ctx, "customer", Customer.id == id, for_update=True)
        if changes.get("phone") and changes["phone"] != customer.phone:
            if _by_phone(db, ctx, changes["phone"]) is not None:
                raise ConflictError("Customer with this phone number already exists")
        for field, value in changes.items():
            setattr(customer, field, value)
        db.flush()

    return envelope(customer, message="Customer updated successfully")


@router.delete("/{id}", response_model=ApiResponse[None])
def deactivate_customer(id: str, db: Session = Depends(get_db), ctx: TenantContext = Depends(get_tenant_context)) -> dict:
    with atomic(db):
        customer = get_visible_or_404(db, ctx, "customer", Customer.id == id, for_update=True)
        customer.is_active = False
    return envelope(message="Customer deactivated successfully")
