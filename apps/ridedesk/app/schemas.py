from datetime import date, datetime
from typing import Annotated, Any, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

UserStatus = Literal["active", "pending", "inactive"]
Flag = Literal[0, 1]
RideStatus = Literal["pending", "scheduled", "accepted", "in_progress", "completed", "cancelled"]
PaymentType = Literal["cash", "wallet", "card"]
Lat = Annotated[float, Field(ge=-90, le=90)]
Lng = Annotated[float, Field(ge=-180, le=180)]


class ApiModel(BaseModel):
    """Wire model: camelCase on output, either case accepted on input."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)


# ---- Users ----
class UserBrief(ApiModel):
    id: int
    user_type: str
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    display_name: Optional[str] = None
    full_name: str = ""
    email: Optional[str] = None
    contact_number: Optional[str] = None
    status: str
    latitude: Optional[float] = None
    longitude: Optional[float] = None


class UserOut(UserBrief):
    country_code: Optional[str] = None
    address: Optional[str] = None
    fleet_id: Optional[int] = None
    is_online: bool
    is_available: bool
    location_updated_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class FleetOut(UserOut):
    drivers: List[UserBrief] = []


class UserCreate(ApiModel):
    first_name: Optional[str] = Field(default=None, max_length=120)
    last_name: Optional[str] = Field(default=None, max_length=120)
    display_name: Optional[str] = Field(default=None, max_length=200)
    email: Optional[str] = Field(default=None, max_length=200)
    contact_number: Optional[str] = Field(default=None, max_length=32)
    country_code: Optional[str] = Field(default=None, max_length=8)
    address: Optional[str] = Field(default=None, max_length=512)
    status: UserStatus = "active"
    password: Optional[str] = Field(default=None, max_length=128)
    fleet_id: Optional[int] = None

    @field_validator("email")
    @classmethod
    def _normalize_email(cls, v: Optional[str]) -> Optional[str]:
        v = (v or "").strip().lower()
        if v and "@" not in v:
            raise ValueError("invalid email")
        return v or None


class UserUpdate(UserCreate):
    status: Optional[UserStatus] = None


class LocationIn(ApiModel):
    lat: Lat
    lng: Lng


class AvailabilityIn(ApiModel):
    is_online: Optional[bool] = None
    is_available: Optional[bool] = None


class BulkIdsIn(ApiModel):
    ids: List[int] = Field(min_length=1, max_length=1000)


class BulkStatusIn(BulkIdsIn):
    status: UserStatus


# ---- Regions / zones ----
class RegionBrief(ApiModel):
    id: int
    name: str
    name_ar: Optional[str] = None


class RegionOut(RegionBrief):
    distance_unit: str
    timezone: Optional[str] = None
    status: int
    coordinates: Optional[Any] = None
    created_at: Optional[datetime] = None


class RegionIn(ApiModel):
    name: str = Field(min_length=1, max_length=120)
    name_ar: Optional[str] = Field(default=None, max_length=120)
    distance_unit: Literal["km", "mi"] = "km"
    timezone: Optional[str] = Field(default=None, max_length=64)
    status: Flag = 1
    coordinates: Optional[List[List[float]]] = None


class RegionUpdate(RegionIn):
    name: Optional[str] = Field(default=None, min_length=1, max_length=120)
    distance_unit: Optional[Literal["km", "mi"]] = None
    status: Optional[Flag] = None


class ZoneBrief(ApiModel):
    id: int
    name: str
    name_ar: Optional[str] = None


class ZoneOut(ZoneBrief):
    region_id: Optional[int] = None
    region: Optional[RegionBrief] = None
    center_lat: float
    center_lng: float
    radius: float
    status: int
    created_at: Optional[datetime] = None


class ZoneIn(ApiModel):
    name: str = Field(min_length=1, max_length=120)
    name_ar: Optional[str] = Field(default=None, max_length=120)
    region_id: Optional[int] = None
    center_lat: Lat
    center_lng: Lng
    radius: float = Field(default=5.0, gt=0)
    status: Flag = 1


class ZoneUpdate(ApiModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=120)
    name_ar: Optional[str] = Field(default=None, max_length=120)
    region_id: Optional[int] = None
    center_lat: Optional[float] = Field(default=None, ge=-90, le=90)
    center_lng: Optional[float] = Field(default=None, ge=-180, le=180)
    radius: Optional[float] = Field(default=None, gt=0)
    status: Optional[Flag] = None


# ---- Vehicle categories ----
class CategoryBrief(ApiModel):
    id: int
    name: str
    name_ar: Optional[str] = None
    slug: str


class CategoryOut(CategoryBrief):
    description: Optional[str] = None
    description_ar: Optional[str] = None
    icon: Optional[str] = None
    capacity: int
    category_type: str
    status: int
    created_at: Optional[datetime] = None


class CategoryIn(ApiModel):
    name: str = Field(min_length=1, max_length=120)
    name_ar: Optional[str] = Field(default=None, max_length=120)
    slug: Optional[str] = Field(default=None, max_length=140)
    description: Optional[str] = None
    description_ar: Optional[str] = None
    icon: Optional[str] = Field(default=None, max_length=512)
    capacity: int = Field(default=4, ge=1, le=100)
    category_type: Literal["passenger", "cargo"] = "passenger"
    status: Flag = 1


class CategoryUpdate(CategoryIn):
    name: Optional[str] = Field(default=None, min_length=1, max_length=120)
    capacity: Optional[int] = Field(default=None, ge=1, le=100)
    category_type: Optional[Literal["passenger", "cargo"]] = None
    status: Optional[Flag] = None


class CategoryZoneOut(ApiModel):
    id: int
    vehicle_category_id: int
    geographic_zone_id: int
    status: int
    vehicle_category: Optional[CategoryBrief] = None
    geographic_zone: Optional[ZoneBrief] = None


class CategoryZoneIn(ApiModel):
    vehicle_category_id: int
    geographic_zone_id: int
    status: Flag = 1


class CategoryZoneBulkIn(ApiModel):
    vehicle_category_id: int
    zone_ids: List[int] = Field(min_length=1, max_length=1000)


class CategoryFeatureOut(ApiModel):
    id: int
    vehicle_category_id: int
    vehicle_category: Optional[CategoryBrief] = None
    name: str
    name_ar: Optional[str] = None
    icon: Optional[str] = None
    status: int
    created_at: Optional[datetime] = None


class CategoryFeatureIn(ApiModel):
    vehicle_category_id: int
    name: str = Field(min_length=1, max_length=120)
    name_ar: Optional[str] = Field(default=None, max_length=120)
    icon: Optional[str] = Field(default=None, max_length=64)
    status: Flag = 1


class CategoryFeatureUpdate(CategoryFeatureIn):
    vehicle_category_id: Optional[int] = None
    name: Optional[str] = Field(default=None, min_length=1, max_length=120)
    status: Optional[Flag] = None


# ---- Pricing ----
class PricingRuleOut(ApiModel):
    id: int
    vehicle_category_id: int
    vehicle_category: Optional[CategoryBrief] = None
    base_fare: float
    base_distance: float
    minimum_fare: float
    per_distance_after_base: float
    per_minute_drive: float
    per_minute_wait: float
    waiting_time_limit: float
    cancellation_fee: float
    commission_type: str
    admin_commission: float
    fleet_commission: float
    status: int
    created_at: Optional[datetime] = None


class PricingRuleIn(ApiModel):
    vehicle_category_id: int
    base_fare: float = Field(default=0, ge=0)
    base_distance: float = Field(default=5, ge=0)
    minimum_fare: float = Field(default=0, ge=0)
    per_distance_after_base: float = Field(default=0, ge=0)
    per_minute_drive: float = Field(default=0, ge=0)
    per_minute_wait: float = Field(default=0, ge=0)
    waiting_time_limit: float = Field(default=0, ge=0)
    cancellation_fee: float = Field(default=0, ge=0)
    commission_type: Literal["percentage", "fixed"] = "percentage"
    admin_commission: float = Field(default=0, ge=0)
    fleet_commission: float = Field(default=0, ge=0)
    status: Flag = 1


class PricingRuleUpdate(ApiModel):
    vehicle_category_id: Optional[int] = None
    base_fare: Optional[float] = Field(default=None, ge=0)
    base_distance: Optional[float] = Field(default=None, ge=0)
    minimum_fare: Optional[float] = Field(default=None, ge=0)
    per_distance_after_base: Optional[float] = Field(default=None, ge=0)
    per_minute_drive: Optional[float] = Field(default=None, ge=0)
    per_minute_wait: Optional[float] = Field(default=None, ge=0)
    waiting_time_limit: Optional[float] = Field(default=None, ge=0)
    cancellation_fee: Optional[float] = Field(default=None, ge=0)
    commission_type: Optional[Literal["percentage", "fixed"]] = None
    admin_commission: Optional[float] = Field(default=None, ge=0)
    fleet_commission: Optional[float] = Field(default=None, ge=0)
    status: Optional[Flag] = None


class ZonePriceOut(ApiModel):
    id: int
    zone_id: int
    zone: Optional[ZoneBrief] = None
    service_id: int
    service: Optional[CategoryBrief] = None
    base_fare: float
    per_km: float
    per_minute: float
    status: int
    created_at: Optional[datetime] = None


class ZonePriceIn(ApiModel):
    zone_id: int
    service_id: int
    base_fare: float = Field(default=0, ge=0)
    per_km: float = Field(default=0, ge=0)
    per_minute: float = Field(default=0, ge=0)
    status: Flag = 1


class ZonePriceUpdate(ApiModel):
    zone_id: Optional[int] = None
    service_id: Optional[int] = None
    base_fare: Optional[float] = Field(default=None, ge=0)
    per_km: Optional[float] = Field(default=None, ge=0)
    per_minute: Optional[float] = Field(default=None, ge=0)
    status: Optional[Flag] = None


class FareCalcIn(ApiModel):
    vehicle_category_id: int
    distance: float = Field(ge=0)
    duration: float = Field(ge=0)
    waiting_time: float = Field(default=0, ge=0)


class FareEstimateIn(ApiModel):
    vehicle_category_id: int
    start_latitude: Lat
    start_longitude: Lng
    end_latitude: Lat
    end_longitude: Lng
    waiting_time: float = Field(default=0, ge=0)


# ---- Rides ----
class CancelReasonOut(ApiModel):
    id: int
    name: str
    name_ar: Optional[str] = None
    type: str
    status: int
    created_at: Optional[datetime] = None


class CancelReasonIn(ApiModel):
    name: str = Field(min_length=1, max_length=255)
    name_ar: Optional[str] = Field(default=None, max_length=255)
    type: Literal["rider", "driver"] = "rider"
    status: Flag = 1


class CancelReasonUpdate(CancelReasonIn):
    name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    type: Optional[Literal["rider", "driver"]] = None
    status: Optional[Flag] = None


class RideOut(ApiModel):
    id: int
    rider_id: Optional[int] = None
    rider: Optional[UserBrief] = None
    driver_id: Optional[int] = None
    driver: Optional[UserBrief] = None
    service_id: Optional[int] = None
    service: Optional[CategoryBrief] = None
    start_address: Optional[str] = None
    start_latitude: float
    start_longitude: float
    end_address: Optional[str] = None
    end_latitude: Optional[float] = None
    end_longitude: Optional[float] = None
    distance: Optional[float] = None
    distance_unit: str
    duration: Optional[float] = None
    status: str
    payment_type: str
    total_amount: Optional[float] = None
    admin_commission: Optional[float] = None
    fleet_commission: Optional[float] = None
    driver_earning: Optional[float] = None
    is_schedule: bool
    schedule_datetime: Optional[datetime] = None
    cancel_reason_id: Optional[int] = None
    cancel_reason: Optional[CancelReasonOut] = None
    accepted_at: Optional[datetime] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    created_at: Optional[datetime] = None


class RideIn(ApiModel):
    rider_id: int
    service_id: int
    start_address: Optional[str] = Field(default=None, max_length=512)
    start_latitude: Lat
    start_longitude: Lng
    end_address: Optional[str] = Field(default=None, max_length=512)
    end_latitude: Optional[float] = Field(default=None, ge=-90, le=90)
    end_longitude: Optional[float] = Field(default=None, ge=-180, le=180)
    distance: Optional[float] = Field(default=None, ge=0)
    duration: Optional[float] = Field(default=None, ge=0)
    distance_unit: Literal["km", "mi"] = "km"
    payment_type: PaymentType = "cash"
    is_schedule: bool = False
    schedule_datetime: Optional[datetime] = None


class RideStatusIn(ApiModel):
    status: RideStatus
    driver_id: Optional[int] = None
    cancel_reason_id: Optional[int] = None


# ---- Support ----
class ComplaintOut(ApiModel):
    id: int
    subject: str
    description: Optional[str] = None
    complaint_by: str
    rider_id: Optional[int] = None
    rider: Optional[UserBrief] = None
    driver_id: Optional[int] = None
    driver: Optional[UserBrief] = None
    ride_request_id: Optional[int] = None
    status: str
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class ComplaintIn(ApiModel):
    subject: str = Field(min_length=1, max_length=255)
    description: Optional[str] = None
    complaint_by: Literal["rider", "driver"] = "rider"
    rider_id: Optional[int] = None
    driver_id: Optional[int] = None
    ride_request_id: Optional[int] = None
    status: Literal["pending", "in_progress", "resolved", "rejected"] = "pending"


class ComplaintUpdate(ApiModel):
    subject: Optional[str] = Field(default=None, min_length=1, max_length=255)
    description: Optional[str] = None
    status: Optional[Literal["pending", "in_progress", "resolved", "rejected"]] = None


TicketStatus = Literal["pending", "inreview", "resolved"]


class SupportMessageOut(ApiModel):
    id: int
    support_id: int
    sender_type: str
    message: str
    created_at: Optional[datetime] = None


class TicketOut(ApiModel):
    id: int
    user_id: Optional[int] = None
    user: Optional[UserBrief] = None
    support_type: str
    message: str
    status: str
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class TicketIn(ApiModel):
    user_id: Optional[int] = None
    support_type: Literal["technical", "billing", "general", "complaint"] = "general"
    message: str = Field(min_length=1, max_length=4000)


class TicketStatusIn(ApiModel):
    status: TicketStatus


class SupportMessageIn(ApiModel):
    message: str = Field(min_length=1, max_length=4000)
    sender_type: Literal["admin", "user"] = "admin"


# ---- Documents ----
class DocumentTypeOut(ApiModel):
    id: int
    name: str
    name_ar: Optional[str] = None
    type: str
    status: int
    is_required: bool
    has_expiry_date: bool
    created_at: Optional[datetime] = None


class DocumentTypeIn(ApiModel):
    name: str = Field(min_length=1, max_length=255)
    name_ar: Optional[str] = Field(default=None, max_length=255)
    type: Literal["driver", "vehicle"] = "driver"
    status: Flag = 1
    is_required: bool = False
    has_expiry_date: bool = False


class DocumentTypeUpdate(DocumentTypeIn):
    name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    type: Optional[Literal["driver", "vehicle"]] = None
    status: Optional[Flag] = None
    is_required: Optional[bool] = None
    has_expiry_date: Optional[bool] = None


class DriverDocumentOut(ApiModel):
    id: int
    driver_id: int
    driver: Optional[UserBrief] = None
    document_id: int
    document: Optional[DocumentTypeOut] = None
    file_url: Optional[str] = None
    expire_date: Optional[date] = None
    is_verified: bool
    created_at: Optional[datetime] = None


class DriverDocumentIn(ApiModel):
    driver_id: int
    document_id: int
    file_url: Optional[str] = Field(default=None, max_length=1024)
    expire_date: Optional[date] = None
    is_verified: bool = False


class DriverDocumentUpdate(ApiModel):
    file_url: Optional[str] = Field(default=None, max_length=1024)
    expire_date: Optional[date] = None
    is_verified: Optional[bool] = None


# ---- Finance ----
class WalletTransactionOut(ApiModel):
    id: int
    wallet_id: int
    type: str
    amount: float
    balance_after: float
    description: Optional[str] = None
    ride_request_id: Optional[int] = None
    created_at: Optional[datetime] = None


class WalletOut(ApiModel):
    id: int
    user_id: int
    user: Optional[UserBrief] = None
    balance: float
    currency: str
    updated_at: Optional[datetime] = None


class WalletTransactionIn(ApiModel):
    amount: float = Field(gt=0)
    type: Literal["credit", "debit"]
    description: Optional[str] = Field(default=None, max_length=255)


class WithdrawOut(ApiModel):
    id: int
    user_id: int
    user: Optional[UserBrief] = None
    amount: float
    currency: str
    status: int
    note: Optional[str] = None
    processed_at: Optional[datetime] = None
    created_at: Optional[datetime] = None


class WithdrawIn(ApiModel):
    user_id: int
    amount: float = Field(gt=0)
    currency: Optional[str] = Field(default=None, max_length=8)


class WithdrawUpdate(ApiModel):
    amount: Optional[float] = Field(default=None, gt=0)
    currency: Optional[str] = Field(default=None, max_length=8)


class WithdrawStatusIn(ApiModel):
    status: Literal[1, 2]
    note: Optional[str] = Field(default=None, max_length=512)


# ---- Tourist trips ----
TripStatus = Literal["pending", "confirmed", "in-progress", "completed", "cancelled"]


class TripOut(ApiModel):
    id: int
    rider_id: Optional[int] = None
    rider: Optional[UserBrief] = None
    driver_id: Optional[int] = None
    driver: Optional[UserBrief] = None
    vehicle_category_id: Optional[int] = None
    vehicle_category: Optional[CategoryBrief] = None
    start_date: date
    end_date: date
    start_location: Optional[str] = None
    start_latitude: Optional[float] = None
    start_longitude: Optional[float] = None
    destinations: Optional[List[str]] = None
    total_amount: float
    payment_status: str
    payment_type: str
    requires_dedicated_driver: bool
    notes: Optional[str] = None
    notes_ar: Optional[str] = None
    status: str
    created_at: Optional[datetime] = None


class TripIn(ApiModel):
    rider_id: Optional[int] = None
    driver_id: Optional[int] = None
    vehicle_category_id: Optional[int] = None
    start_date: date
    end_date: date
    start_location: Optional[str] = Field(default=None, max_length=512)
    start_latitude: Optional[float] = Field(default=None, ge=-90, le=90)
    start_longitude: Optional[float] = Field(default=None, ge=-180, le=180)
    destinations: List[str] = []
    total_amount: float = Field(default=0, ge=0)
    payment_status: Literal["pending", "paid", "refunded"] = "pending"
    payment_type: PaymentType = "cash"
    requires_dedicated_driver: bool = False
    notes: Optional[str] = None
    notes_ar: Optional[str] = None
    status: TripStatus = "pending"


class TripUpdate(ApiModel):
    rider_id: Optional[int] = None
    vehicle_category_id: Optional[int] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    start_location: Optional[str] = Field(default=None, max_length=512)
    start_latitude: Optional[float] = Field(default=None, ge=-90, le=90)
    start_longitude: Optional[float] = Field(default=None, ge=-180, le=180)
    destinations: Optional[List[str]] = None
    total_amount: Optional[float] = Field(default=None, ge=0)
    payment_status: Optional[Literal["pending", "paid", "refunded"]] = None
    payment_type: Optional[PaymentType] = None
    requires_dedicated_driver: Optional[bool] = None
    notes: Optional[str] = None
    notes_ar: Optional[str] = None


class TripAssignIn(ApiModel):
    driver_id: int


class TripStatusIn(ApiModel):
    status: TripStatus


# ---- Catalog ----
class SosOut(ApiModel):
    id: int
    name: str
    contact_number: str
    status: int
    created_at: Optional[datetime] = None


class SosIn(ApiModel):
    name: str = Field(min_length=1, max_length=120)
    contact_number: str = Field(min_length=3, max_length=32)
    status: Flag = 1


class SosUpdate(ApiModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=120)
    contact_number: Optional[str] = Field(default=None, min_length=3, max_length=32)
    status: Optional[Flag] = None


class FaqOut(ApiModel):
    id: int
    question: str
    answer: str
    type: str
    status: int
    created_at: Optional[datetime] = None


class FaqIn(ApiModel):
    question: str = Field(min_length=1, max_length=2000)
    answer: str = Field(min_length=1, max_length=8000)
    type: Literal["rider", "driver"] = "rider"
    status: Flag = 1


class FaqUpdate(ApiModel):
    question: Optional[str] = Field(default=None, min_length=1, max_length=2000)
    answer: Optional[str] = Field(default=None, min_length=1, max_length=8000)
    type: Optional[Literal["rider", "driver"]] = None
    status: Optional[Flag] = None


# ---- Push notifications ----
class PushOut(ApiModel):
    id: int
    title: str
    message: str
    user_type: str
    user_id: Optional[int] = None
    recipient_count: int
    sent_count: int
    created_at: Optional[datetime] = None


class PushIn(ApiModel):
    title: str = Field(min_length=1, max_length=255)
    message: str = Field(min_length=1, max_length=4000)
    user_type: Literal["all", "rider", "driver"] = "all"
    user_id: Optional[int] = None
