from datetime import date, datetime
from decimal import Decimal
from typing import Any, List, Optional

from sqlalchemy import (
    JSON,
    Boolean,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from . import config
from .db import Base, table_args, utcnow

Money = Numeric(12, 2)

ACTIVE_RIDE_STATUSES = ("accepted", "in_progress")


def fk(target: str, ondelete: Optional[str] = None) -> ForeignKey:
    if config.DB_SCHEMA:
        target = f"{config.DB_SCHEMA}.{target}"
    return ForeignKey(target, ondelete=ondelete)


class TimestampMixin:
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, index=True)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, onupdate=utcnow)


class Setting(Base):
    __tablename__ = "settings"
    __table_args__ = table_args()
    key: Mapped[str] = mapped_column(String(64), primary_key=True)
    value: Mapped[Optional[str]] = mapped_column(String(512), nullable=True)


class User(TimestampMixin, Base):
    """Riders, drivers and fleet owners share one table keyed by ``user_type``."""

    __tablename__ = "users"
    __table_args__ = table_args(UniqueConstraint("user_type", "email", name="uq_users_type_email"))
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_type: Mapped[str] = mapped_column(String(16), index=True)  # rider|driver|fleet
    first_name: Mapped[Optional[str]] = mapped_column(String(120), default=None)
    last_name: Mapped[Optional[str]] = mapped_column(String(120), default=None)
    display_name: Mapped[Optional[str]] = mapped_column(String(200), default=None)
    email: Mapped[Optional[str]] = mapped_column(String(200), default=None)
    contact_number: Mapped[Optional[str]] = mapped_column(String(32), default=None)
    country_code: Mapped[Optional[str]] = mapped_column(String(8), default=None)
    address: Mapped[Optional[str]] = mapped_column(String(512), default=None)
    status: Mapped[str] = mapped_column(String(16), default="active")  # active|pending|inactive
    password_hash: Mapped[Optional[str]] = mapped_column(String(256), default=None)
    fleet_id: Mapped[Optional[int]] = mapped_column(fk("users.id", "SET NULL"), default=None, index=True)
    is_online: Mapped[bool] = mapped_column(Boolean, default=False)
    is_available: Mapped[bool] = mapped_column(Boolean, default=True)
    latitude: Mapped[Optional[float]] = mapped_column(Float, default=None)
    longitude: Mapped[Optional[float]] = mapped_column(Float, default=None)
    location_updated_at: Mapped[Optional[datetime]] = mapped_column(DateTime, default=None)

    fleet: Mapped[Optional["User"]] = relationship(remote_side="User.id", back_populates="drivers")
    drivers: Mapped[List["User"]] = relationship(back_populates="fleet")
    documents: Mapped[List["DriverDocument"]] = relationship(
        back_populates="driver", cascade="all, delete-orphan"
    )

    @property
    def full_name(self) -> str:
        name = " ".join(p for p in (self.first_name, self.last_name) if p)
        return name or (self.display_name or "")


class Region(TimestampMixin, Base):
    __tablename__ = "regions"
    __table_args__ = table_args()
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(120))
    name_ar: Mapped[Optional[str]] = mapped_column(String(120), default=None)
    distance_unit: Mapped[str] = mapped_column(String(4), default="km")  # km|mi
    timezone: Mapped[Optional[str]] = mapped_column(String(64), default=None)
    status: Mapped[int] = mapped_column(Integer, default=1)
    coordinates: Mapped[Optional[Any]] = mapped_column(JSON, default=None)

    zones: Mapped[List["GeographicZone"]] = relationship(back_populates="region")


class GeographicZone(TimestampMixin, Base):
    __tablename__ = "geographic_zones"
    __table_args__ = table_args()
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(120))
    name_ar: Mapped[Optional[str]] = mapped_column(String(120), default=None)
    region_id: Mapped[Optional[int]] = mapped_column(fk("regions.id"), default=None, index=True)
    center_lat: Mapped[float] = mapped_column(Float)
    center_lng: Mapped[float] = mapped_column(Float)
    radius: Mapped[float] = mapped_column(Float, default=5.0)  # km
    status: Mapped[int] = mapped_column(Integer, default=1)

    region: Mapped[Optional[Region]] = relationship(back_populates="zones")


class VehicleCategory(TimestampMixin, Base):
    __tablename__ = "vehicle_categories"
    __table_args__ = table_args()
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(120))
    name_ar: Mapped[Optional[str]] = mapped_column(String(120), default=None)
    slug: Mapped[str] = mapped_column(String(140), unique=True)
    description: Mapped[Optional[str]] = mapped_column(Text, default=None)
    description_ar: Mapped[Optional[str]] = mapped_column(Text, default=None)
    icon: Mapped[Optional[str]] = mapped_column(String(512), default=None)
    capacity: Mapped[int] = mapped_column(Integer, default=4)
    category_type: Mapped[str] = mapped_column(String(16), default="passenger")  # passenger|cargo
    status: Mapped[int] = mapped_column(Integer, default=1)


class CategoryZone(TimestampMixin, Base):
    __tablename__ = "category_zones"
    __table_args__ = table_args(
        UniqueConstraint("vehicle_category_id", "geographic_zone_id", name="uq_category_zone")
    )
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    vehicle_category_id: Mapped[int] = mapped_column(fk("vehicle_categories.id", "CASCADE"), index=True)
    geographic_zone_id: Mapped[int] = mapped_column(fk("geographic_zones.id", "CASCADE"), index=True)
    status: Mapped[int] = mapped_column(Integer, default=1)

    vehicle_category: Mapped[VehicleCategory] = relationship()
    geographic_zone: Mapped[GeographicZone] = relationship()


class PricingRule(TimestampMixin, Base):
    __tablename__ = "pricing_rules"
    __table_args__ = table_args()
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    vehicle_category_id: Mapped[int] = mapped_column(fk("vehicle_categories.id", "CASCADE"), unique=True)
    base_fare: Mapped[Decimal] = mapped_column(Money, default=Decimal("0"))
    base_distance: Mapped[float] = mapped_column(Float, default=5.0)
    minimum_fare: Mapped[Decimal] = mapped_column(Money, default=Decimal("0"))
    per_distance_after_base: Mapped[Decimal] = mapped_column(Money, default=Decimal("0"))
    per_minute_drive: Mapped[Decimal] = mapped_column(Money, default=Decimal("0"))
    per_minute_wait: Mapped[Decimal] = mapped_column(Money, default=Decimal("0"))
    waiting_time_limit: Mapped[float] = mapped_column(Float, default=0.0)
    cancellation_fee: Mapped[Decimal] = mapped_column(Money, default=Decimal("0"))
    commission_type: Mapped[str] = mapped_column(String(16), default="percentage")  # percentage|fixed
    admin_commission: Mapped[Decimal] = mapped_column(Money, default=Decimal("0"))
    fleet_commission: Mapped[Decimal] = mapped_column(Money, default=Decimal("0"))
    status: Mapped[int] = mapped_column(Integer, default=1)

    vehicle_category: Mapped[VehicleCategory] = relationship()


class ZonePrice(TimestampMixin, Base):
    """Per-zone override of a category's base fare and unit rates."""

    __tablename__ = "zone_prices"
    __table_args__ = table_args(
        UniqueConstraint("zone_id", "service_id", name="uq_zone_price")
    )
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    zone_id: Mapped[int] = mapped_column(fk("geographic_zones.id", "CASCADE"), index=True)
    service_id: Mapped[int] = mapped_column(fk("vehicle_categories.id", "CASCADE"), index=True)
    base_fare: Mapped[Decimal] = mapped_column(Money, default=Decimal("0"))
    per_km: Mapped[Decimal] = mapped_column(Money, default=Decimal("0"))
    per_minute: Mapped[Decimal] = mapped_column(Money, default=Decimal("0"))
    status: Mapped[int] = mapped_column(Integer, default=1)

    zone: Mapped[GeographicZone] = relationship()
    service: Mapped[VehicleCategory] = relationship()


class CategoryFeature(TimestampMixin, Base):
    __tablename__ = "category_features"
    __table_args__ = table_args()
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    vehicle_category_id: Mapped[int] = mapped_column(fk("vehicle_categories.id", "CASCADE"), index=True)
    name: Mapped[str] = mapped_column(String(120))
    name_ar: Mapped[Optional[str]] = mapped_column(String(120), default=None)
    icon: Mapped[Optional[str]] = mapped_column(String(64), default=None)
    status: Mapped[int] = mapped_column(Integer, default=1)

    vehicle_category: Mapped[VehicleCategory] = relationship()


class CancellationReason(TimestampMixin, Base):
    __tablename__ = "cancellation_reasons"
    __table_args__ = table_args()
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(255))
    name_ar: Mapped[Optional[str]] = mapped_column(String(255), default=None)
    type: Mapped[str] = mapped_column(String(16), default="rider")  # rider|driver
    status: Mapped[int] = mapped_column(Integer, default=1)


class RideRequest(TimestampMixin, Base):
    __tablename__ = "ride_requests"
    __table_args__ = table_args()
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    rider_id: Mapped[Optional[int]] = mapped_column(fk("users.id", "SET NULL"), default=None, index=True)
    driver_id: Mapped[Optional[int]] = mapped_column(fk("users.id", "SET NULL"), default=None, index=True)
    service_id: Mapped[Optional[int]] = mapped_column(fk("vehicle_categories.id", "SET NULL"), default=None)
    start_address: Mapped[Optional[str]] = mapped_column(String(512), default=None)
    start_latitude: Mapped[float] = mapped_column(Float)
    start_longitude: Mapped[float] = mapped_column(Float)
    end_address: Mapped[Optional[str]] = mapped_column(String(512), default=None)
    end_latitude: Mapped[Optional[float]] = mapped_column(Float, default=None)
    end_longitude: Mapped[Optional[float]] = mapped_column(Float, default=None)
    distance: Mapped[Optional[float]] = mapped_column(Float, default=None)
    distance_unit: Mapped[str] = mapped_column(String(4), default="km")
    duration: Mapped[Optional[float]] = mapped_column(Float, default=None)  # minutes
    status: Mapped[str] = mapped_column(String(16), default="pending", index=True)
    payment_type: Mapped[str] = mapped_column(String(16), default="cash")  # cash|wallet|card
    total_amount: Mapped[Optional[Decimal]] = mapped_column(Money, default=None)
    admin_commission: Mapped[Optional[Decimal]] = mapped_column(Money, default=None)
    fleet_commission: Mapped[Optional[Decimal]] = mapped_column(Money, default=None)
    driver_earning: Mapped[Optional[Decimal]] = mapped_column(Money, default=None)
    is_schedule: Mapped[bool] = mapped_column(Boolean, default=False)
    schedule_datetime: Mapped[Optional[datetime]] = mapped_column(DateTime, default=None)
    cancel_reason_id: Mapped[Optional[int]] = mapped_column(fk("cancellation_reasons.id", "SET NULL"), default=None)
    accepted_at: Mapped[Optional[datetime]] = mapped_column(DateTime, default=None)
    started_at: Mapped[Optional[datetime]] = mapped_column(DateTime, default=None)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime, default=None)
    cancelled_at: Mapped[Optional[datetime]] = mapped_column(DateTime, default=None)

    rider: Mapped[Optional[User]] = relationship(foreign_keys=[rider_id])
    driver: Mapped[Optional[User]] = relationship(foreign_keys=[driver_id])
    service: Mapped[Optional[VehicleCategory]] = relationship()
    cancel_reason: Mapped[Optional[CancellationReason]] = relationship()


class Complaint(TimestampMixin, Base):
    __tablename__ = "complaints"
    __table_args__ = table_args()
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    subject: Mapped[str] = mapped_column(String(255))
    description: Mapped[Optional[str]] = mapped_column(Text, default=None)
    complaint_by: Mapped[str] = mapped_column(String(16), default="rider")  # rider|driver
    rider_id: Mapped[Optional[int]] = mapped_column(fk("users.id", "SET NULL"), default=None)
    driver_id: Mapped[Optional[int]] = mapped_column(fk("users.id", "SET NULL"), default=None)
    ride_request_id: Mapped[Optional[int]] = mapped_column(fk("ride_requests.id", "SET NULL"), default=None)
    status: Mapped[str] = mapped_column(String(16), default="pending", index=True)

    rider: Mapped[Optional[User]] = relationship(foreign_keys=[rider_id])
    driver: Mapped[Optional[User]] = relationship(foreign_keys=[driver_id])
    ride_request: Mapped[Optional[RideRequest]] = relationship()


class SupportTicket(TimestampMixin, Base):
    __tablename__ = "support_tickets"
    __table_args__ = table_args()
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[Optional[int]] = mapped_column(fk("users.id", "SET NULL"), default=None, index=True)
    support_type: Mapped[str] = mapped_column(String(16), default="general")
    message: Mapped[str] = mapped_column(Text)
    status: Mapped[str] = mapped_column(String(16), default="pending", index=True)  # pending|inreview|resolved

    user: Mapped[Optional[User]] = relationship()
    messages: Mapped[List["SupportMessage"]] = relationship(
        back_populates="ticket",
        cascade="all, delete-orphan",
        order_by="SupportMessage.id",
    )


class SupportMessage(Base):
    __tablename__ = "support_messages"
    __table_args__ = table_args()
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    support_id: Mapped[int] = mapped_column(fk("support_tickets.id", "CASCADE"), index=True)
    sender_type: Mapped[str] = mapped_column(String(16), default="admin")  # admin|user
    message: Mapped[str] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)

    ticket: Mapped[SupportTicket] = relationship(back_populates="messages")


class DocumentType(TimestampMixin, Base):
    __tablename__ = "documents"
    __table_args__ = table_args()
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(255))
    name_ar: Mapped[Optional[str]] = mapped_column(String(255), default=None)
    type: Mapped[str] = mapped_column(String(16), default="driver")  # driver|vehicle
    status: Mapped[int] = mapped_column(Integer, default=1)
    is_required: Mapped[bool] = mapped_column(Boolean, default=False)
    has_expiry_date: Mapped[bool] = mapped_column(Boolean, default=False)


class DriverDocument(TimestampMixin, Base):
    __tablename__ = "driver_documents"
    __table_args__ = table_args(UniqueConstraint("driver_id", "document_id", name="uq_driver_document"))
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    driver_id: Mapped[int] = mapped_column(fk("users.id", "CASCADE"), index=True)
    document_id: Mapped[int] = mapped_column(fk("documents.id", "CASCADE"), index=True)
    file_url: Mapped[Optional[str]] = mapped_column(String(1024), default=None)
    expire_date: Mapped[Optional[date]] = mapped_column(Date, default=None)
    is_verified: Mapped[bool] = mapped_column(Boolean, default=False)

    driver: Mapped[User] = relationship(back_populates="documents")
    document: Mapped[DocumentType] = relationship()


class Wallet(TimestampMixin, Base):
    __tablename__ = "wallets"
    __table_args__ = table_args()
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(fk("users.id", "CASCADE"), unique=True)
    balance: Mapped[Decimal] = mapped_column(Money, default=Decimal("0"))
    currency: Mapped[str] = mapped_column(String(8), default=config.DEFAULT_CURRENCY)

    user: Mapped[User] = relationship()
    transactions: Mapped[List["WalletTransaction"]] = relationship(
        back_populates="wallet",
        cascade="all, delete-orphan",
        order_by="WalletTransaction.id.desc()",
    )


class WalletTransaction(Base):
    __tablename__ = "wallet_transactions"
    __table_args__ = table_args()
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    wallet_id: Mapped[int] = mapped_column(fk("wallets.id", "CASCADE"), index=True)
    type: Mapped[str] = mapped_column(String(8))  # credit|debit
    amount: Mapped[Decimal] = mapped_column(Money)
    balance_after: Mapped[Decimal] = mapped_column(Money)
    description: Mapped[Optional[str]] = mapped_column(String(255), default=None)
    ride_request_id: Mapped[Optional[int]] = mapped_column(fk("ride_requests.id", "SET NULL"), default=None)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)

    wallet: Mapped[Wallet] = relationship(back_populates="transactions")


class WithdrawRequest(TimestampMixin, Base):
    __tablename__ = "withdraw_requests"
    __table_args__ = table_args()
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(fk("users.id", "CASCADE"), index=True)
    amount: Mapped[Decimal] = mapped_column(Money)
    currency: Mapped[str] = mapped_column(String(8), default=config.DEFAULT_CURRENCY)
    status: Mapped[int] = mapped_column(Integer, default=0, index=True)  # 0 pending, 1 approved, 2 rejected
    note: Mapped[Optional[str]] = mapped_column(String(512), default=None)
    processed_at: Mapped[Optional[datetime]] = mapped_column(DateTime, default=None)

    user: Mapped[User] = relationship()


class TouristTrip(TimestampMixin, Base):
    __tablename__ = "tourist_trips"
    __table_args__ = table_args()
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    rider_id: Mapped[Optional[int]] = mapped_column(fk("users.id", "SET NULL"), default=None)
    driver_id: Mapped[Optional[int]] = mapped_column(fk("users.id", "SET NULL"), default=None)
    vehicle_category_id: Mapped[Optional[int]] = mapped_column(fk("vehicle_categories.id", "SET NULL"), default=None)
    start_date: Mapped[date] = mapped_column(Date)
    end_date: Mapped[date] = mapped_column(Date)
    start_location: Mapped[Optional[str]] = mapped_column(String(512), default=None)
    start_latitude: Mapped[Optional[float]] = mapped_column(Float, default=None)
    start_longitude: Mapped[Optional[float]] = mapped_column(Float, default=None)
    destinations: Mapped[Optional[Any]] = mapped_column(JSON, default=None)
    total_amount: Mapped[Decimal] = mapped_column(Money, default=Decimal("0"))
    payment_status: Mapped[str] = mapped_column(String(16), default="pending")  # pending|paid|refunded
    payment_type: Mapped[str] = mapped_column(String(16), default="cash")  # cash|card|wallet
    requires_dedicated_driver: Mapped[bool] = mapped_column(Boolean, default=False)
    notes: Mapped[Optional[str]] = mapped_column(Text, default=None)
    notes_ar: Mapped[Optional[str]] = mapped_column(Text, default=None)
    status: Mapped[str] = mapped_column(String(16), default="pending", index=True)

    rider: Mapped[Optional[User]] = relationship(foreign_keys=[rider_id])
    driver: Mapped[Optional[User]] = relationship(foreign_keys=[driver_id])
    vehicle_category: Mapped[Optional[VehicleCategory]] = relationship()


class SosContact(TimestampMixin, Base):
    __tablename__ = "sos_contacts"
    __table_args__ = table_args()
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(120))
    contact_number: Mapped[str] = mapped_column(String(32))
    status: Mapped[int] = mapped_column(Integer, default=1)


class Faq(TimestampMixin, Base):
    __tablename__ = "faqs"
    __table_args__ = table_args()
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    question: Mapped[str] = mapped_column(Text)
    answer: Mapped[str] = mapped_column(Text)
    type: Mapped[str] = mapped_column(String(16), default="rider")  # rider|driver
    status: Mapped[int] = mapped_column(Integer, default=1)


class PushNotification(Base):
    __tablename__ = "push_notifications"
    __table_args__ = table_args()
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    title: Mapped[str] = mapped_column(String(255))
    message: Mapped[str] = mapped_column(Text)
    user_type: Mapped[str] = mapped_column(String(16), default="all")  # all|rider|driver
    user_id: Mapped[Optional[int]] = mapped_column(fk("users.id", "SET NULL"), default=None)
    recipient_count: Mapped[int] = mapped_column(Integer, default=0)
    sent_count: Mapped[int] = mapped_column(Integer, default=0)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, index=True)
