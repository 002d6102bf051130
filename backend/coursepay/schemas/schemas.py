"""
Pydantic Schemas — Request & Response models for API validation.

Public JSON uses camelCase keys; models accept either spelling on input.
"""
from datetime import datetime
from decimal import Decimal
from typing import Optional, Dict, List, Any

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)


# ──────────────── Auth ────────────────

class RegisterRequest(CamelModel):
    name: str = Field(..., min_length=1, max_length=120)
    email: str = Field(..., description="Login email, stored lower-cased")
    password: str = Field(..., min_length=6)
    phone: Optional[str] = None
    role: str = Field("student", description="student | university | partner | admin | finance")


class LoginRequest(CamelModel):
    email: str
    password: str


class UserOut(CamelModel):
    id: int
    name: str
    email: str
    role: str


class AuthResponse(CamelModel):
    token: str
    user: UserOut


# ──────────────── Courses ────────────────

class InstructorOut(CamelModel):
    id: Optional[int] = None
    name: str


class CourseOut(CamelModel):
    id: int
    title: str
    description: str = ""
    price: float
    category: Optional[str] = None
    thumbnail: Optional[str] = None
    instructor: InstructorOut
    modules: List[Dict[str, Any]] = []


class CourseWriteRequest(CamelModel):
    title: str = Field(..., min_length=1, max_length=200)
    description: str = ""
    price: Decimal = Field(..., gt=0)
    category: Optional[str] = None
    thumbnail: Optional[str] = None
    instructor_name: Optional[str] = None
    modules: List[Dict[str, Any]] = []


class CourseUpdateRequest(CamelModel):
    title: Optional[str] = None
    description: Optional[str] = None
    price: Optional[Decimal] = Field(None, gt=0)
    category: Optional[str] = None
    thumbnail: Optional[str] = None
    instructor_name: Optional[str] = None
    modules: Optional[List[Dict[str, Any]]] = None


# ──────────────── Discounts ────────────────

class DiscountValidateRequest(CamelModel):
    code: Optional[str] = None
    course_id: int


class DiscountValidateResponse(CamelModel):
    code: str
    type: str
    value: float


class DiscountCreateRequest(CamelModel):
    code: str
    type: str = Field(..., description="percentage | flat")
    value: Decimal = Field(..., ge=0)
    expiry_date: Optional[datetime] = None
    course_id: Optional[int] = None
    usage_limit: Optional[int] = Field(None, ge=1)

    @field_validator("type")
    @classmethod
    def _known_type(cls, v: str) -> str:
        if v not in ("percentage", "flat"):
            raise ValueError("type must be 'percentage' or 'flat'")
        return v


class DiscountOut(CamelModel):
    id: int
    code: str
    type: str
    value: float
    is_active: bool
    expiry_date: Optional[datetime] = None
    course_id: Optional[int] = None
    partner_id: Optional[int] = None
    usage_limit: Optional[int] = None
    usage_count: int = 0


# ──────────────── Payment ────────────────

class AmountBreakdown(CamelModel):
    original: float
    discount: float
    subtotal: float
    gst: float
    total: float


class PaymentInitRequest(CamelModel):
    course_id: int
    discount_code: Optional[str] = None
    mode: str = Field("checkout", description="elements | checkout")


class PaymentInitResponse(CamelModel):
    success: bool = True
    transaction_id: str
    mode: str
    client_secret: Optional[str] = None
    publishable_key: Optional[str] = None
    payment_url: Optional[str] = None
    expires_at: Optional[datetime] = None
    amount: AmountBreakdown
    reused: bool = False


class RefundRequest(CamelModel):
    transaction_id: str
    amount: Optional[Decimal] = Field(None, gt=0)
    reason: str = Field("", max_length=500)


class ReconcileResponse(CamelModel):
    success: bool = True
    checked: int
    succeeded: int
    failed: int
    expired: int
    unchanged: int
    errors: int


# ──────────────── Audit ────────────────

class AuditEntryOut(CamelModel):
    id: int
    action: str
    payload_hash: str
    previous_hash: Optional[str] = None
    actor_id: Optional[str] = None
    ip_address: Optional[str] = None
    timestamp: datetime
