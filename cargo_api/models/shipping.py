from __future__ import annotations

from datetime import date, datetime, time
from decimal import Decimal

from sqlalchemy import (
    Boolean,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    Time,
    UniqueConstraint,
    event,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from cargo_api.db.base import Base, TenantScoped, new_id, utcnow
from cargo_api.models.tenancy import Branch

CONSIGNMENT_STATUSES = (
    "booked",
    "picked",
    "in_transit",
    "reached",
    "out_for_delivery",
    "delivered",
    "undelivered",
    "cancelled",
)
PAYMENT_TYPES = ("paid", "topay", "tbb")
DELIVERY_TYPES = ("godown", "door")
CUSTOMER_TYPES = ("regular", "walkin", "corporate")
OGPL_STATUSES = ("created", "loading", "departed", "reached")

_MONEY = Numeric(12, 2)


class Customer(TenantScoped, Base):
    __tablename__ = "customers"
    __table_args__ = (UniqueConstraint("tenant_id", "phone"),)

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    customer_code: Mapped[str | None] = mapped_column(String(20), nullable=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    phone: Mapped[str] = mapped_column(String(20), nullable=False)
    alternate_phone: Mapped[str | None] = mapped_column(String(20), nullable=True)
    email: Mapped[str | None] = mapped_column(String(100), nullable=True)
    address: Mapped[str | None] = mapped_column(Text, nullable=True)
    city: Mapped[str | None] = mapped_column(String(100), nullable=True)
    state: Mapped[str | None] = mapped_column(String(100), nullable=True)
    pincode: Mapped[str | None] = mapped_column(String(10), nullable=True)
    gstin: Mapped[str | None] = mapped_column(String(20), nullable=True)
    customer_type: Mapped[str] = mapped_column(String(20), default="regular", nullable=False)
    credit_limit: Mapped[Decimal] = mapped_column(_MONEY, default=0, nullable=False)
    credit_days: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    special_instructions: Mapped[str | None] = mapped_column(Text, nullable=True)

    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False, index=True)
    created_by: Mapped[str | None] = mapped_column(ForeignKey("users.id"), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)


class Ogpl(TenantScoped, Base):
    """Outbound manifest: one vehicle trip carrying many consignments."""

    __tablename__ = "ogpl"
    __table_args__ = (UniqueConstraint("tenant_id", "ogpl_number"),)

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    ogpl_number: Mapped[str] = mapped_column(String(40), nullable=False)
    ogpl_date: Mapped[date] = mapped_column(Date, nullable=False)

    from_branch_id: Mapped[str] = mapped_column(ForeignKey("branches.id"), nullable=False, index=True)
    to_branch_id: Mapped[str] = mapped_column(ForeignKey("branches.id"), nullable=False, index=True)

    vehicle_number: Mapped[str] = mapped_column(String(20), nullable=False)
    driver_name: Mapped[str | None] = mapped_column(String(100), nullable=True)
    driver_phone: Mapped[str | None] = mapped_column(String(20), nullable=True)
    seal_number: Mapped[str | None] = mapped_column(String(50), nullable=True)

    departure_time: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    arrival_time: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)

    total_consignments: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    total_packages: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    total_weight: Mapped[Decimal] = mapped_column(Numeric(12, 3), default=0, nullable=False)

    status: Mapped[str] = mapped_column(String(20), default="created", nullable=False, index=True)
    created_by: Mapped[str | None] = mapped_column(ForeignKey("users.id"), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)

    from_branch: Mapped[Branch] = relationship(foreign_keys=[from_branch_id], lazy="joined")
    to_branch: Mapped[Branch] = relationship(foreign_keys=[to_branch_id], lazy="joined")

    @property
    def from_branch_name(self) -> str | None:
        return self.from_branch.name if self.from_branch is not None else None

    @property
    def to_branch_name(self) -> str | None:
        return self.to_branch.name if self.to_branch is not None else None


class Consignment(TenantScoped, Base):
    __tablename__ = "consignments"
    __table_args__ = (UniqueConstraint("tenant_id", "cn_number"),)

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    cn_number: Mapped[str] = mapped_column(String(30), nullable=False)
    booking_date: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    booking_time: Mapped[time] = mapped_column(Time, nullable=False)

    # Branch relationships used by the visibility policy: origin, destination, current location.
    from_branch_id: Mapped[str] = mapped_column(ForeignKey("branches.id"), nullable=False, index=True)
    to_branch_id: Mapped[str | None] = mapped_column(ForeignKey("branches.id"), nullable=True, index=True)
    current_branch_id: Mapped[str | None] = mapped_column(ForeignKey("branches.id"), nullable=True, index=True)

    consignor_id: Mapped[str | None] = mapped_column(ForeignKey("customers.id"), nullable=True)
    consignor_name: Mapped[str] = mapped_column(String(200), nullable=False)
    consignor_phone: Mapped[str] = mapped_column(String(20), nullable=False, index=True)
    consignor_address: Mapped[str | None] = mapped_column(Text, nullable=True)
    consignor_gstin: Mapped[str | None] = mapped_column(String(20), nullable=True)

    consignee_name: Mapped[str] = mapped_column(String(200), nullable=False)
    consignee_phone: Mapped[str] = mapped_column(String(20), nullable=False, index=True)
    consignee_address: Mapped[str | None] = mapped_column(Text, nullable=True)
    consignee_pincode: Mapped[str | None] = mapped_column(String(10), nullable=True)

    goods_description: Mapped[str | None] = mapped_column(Text, nullable=True)
    goods_value: Mapped[Decimal | None] = mapped_column(_MONEY, nullable=True)
    eway_bill_number: Mapped[str | None] = mapped_column(String(30), nullable=True)
    invoice_number: Mapped[str | None] = mapped_column(String(50), nullable=True)
    no_of_packages: Mapped[int] = mapped_column(Integer, nullable=False)
    actual_weight: Mapped[Decimal | None] = mapped_column(Numeric(12, 3), nullable=True)
    charged_weight: Mapped[Decimal | None] = mapped_column(Numeric(12, 3), nullable=True)

    freight_amount: Mapped[Decimal] = mapped_column(_MONEY, nullable=False)
    hamali_charges: Mapped[Decimal] = mapped_column(_MONEY, default=0, nullable=False)
    door_delivery_charges: Mapped[Decimal] = mapped_column(_MONEY, default=0, nullable=False)
    loading_charges: Mapped[Decimal] = mapped_column(_MONEY, default=0, nullable=False)
    unloading_charges: Mapped[Decimal] = mapped_column(_MONEY, default=0, nullable=False)
    other_charges: Mapped[Decimal] = mapped_column(_MONEY, default=0, nullable=False)
    statistical_charges: Mapped[Decimal] = mapped_column(_MONEY, default=0, nullable=False)

    gst_percentage: Mapped[Decimal] = mapped_column(Numeric(5, 2), nullable=False)
    cgst: Mapped[Decimal] = mapped_column(_MONEY, default=0, nullable=False)
    sgst: Mapped[Decimal] = mapped_column(_MONEY, default=0, nullable=False)
    igst: Mapped[Decimal] = mapped_column(_MONEY, default=0, nullable=False)
    total_amount: Mapped[Decimal] = mapped_column(_MONEY, nullable=False)

    payment_type: Mapped[str] = mapped_column(String(10), nullable=False)
    delivery_type: Mapped[str] = mapped_column(String(10), default="godown", nullable=False)
    status: Mapped[str] = mapped_column(String(20), default="booked", nullable=False, index=True)
    ogpl_id: Mapped[str | None] = mapped_column(ForeignKey("ogpl.id"), nullable=True, index=True)

    created_by: Mapped[str | None] = mapped_column(ForeignKey("users.id"), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    from_branch: Mapped[Branch] = relationship(foreign_keys=[from_branch_id], lazy="joined")
    to_branch: Mapped[Branch | None] = relationship(foreign_keys=[to_branch_id], lazy="joined")
    current_branch: Mapped[Branch | None] = relationship(foreign_keys=[current_branch_id], lazy="joined")

    @property
    def from_branch_name(self) -> str | None:
        return self.from_branch.name if self.from_branch is not None else None

    @property
    def from_city(self) -> str | None:
        return self.from_branch.city if self.from_branch is not None else None

    @property
    def to_branch_name(self) -> str | None:
        return self.to_branch.name if self.to_branch is not None else None

    @property
    def to_city(self) -> str | None:
        return self.to_branch.city if self.to_branch is not None else None

    @property
    def current_branch_name(self) -> str | None:
        return self.current_branch.name if self.current_branch is not None else None

    @property
    def current_city(self) -> str | None:
        return self.current_branch.city if self.current_branch is not None else None


class TrackingEvent(TenantScoped, Base):
    """Status history of a consignment. Rows are appended, never changed."""

    __tablename__ = "tracking_events"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    consignment_id: Mapped[str] = mapped_column(ForeignKey("consignments.id"), nullable=False, index=True)
    status: Mapped[str] = mapped_column(String(20), nullable=False)
    location: Mapped[str | None] = mapped_column(String(200), nullable=True)
    branch_id: Mapped[str | None] = mapped_column(ForeignKey("branches.id"), nullable=True)
    remarks: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_by: Mapped[str | None] = mapped_column(ForeignKey("users.id"), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)

    branch: Mapped[Branch | None] = relationship(lazy="joined")

    @property
    def branch_name(self) -> str | None:
        return self.branch.name if self.branch is not None else None

    @property
    def branch_city(self) -> str | None:
        return self.branch.city if self.branch is not None else None


@event.listens_for(TrackingEvent, "before_update")
@event.listens_for(TrackingEvent, "before_delete")
def _refuse_tracking_mutation(mapper, connection, target: TrackingEvent) -> None:
    raise RuntimeError(f"Tracking events are append-only (id={target.id})")
