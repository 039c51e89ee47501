"""
Pydantic Schemas for Request/Response Validation

Every body is validated here before it reaches the store. Field names are
snake_case in Python and camelCase on the wire; requests accept both.

Author: Bistro Boss Team
Version: 1.0.0
"""

import re
import uuid
from datetime import datetime
from typing import Optional, List

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

EMAIL_PATTERN = re.compile(r'^[\w\.\+-]+@[\w\.-]+\.\w+$')


def normalize_email(v: str) -> str:
    v = v.strip().lower()
    if not EMAIL_PATTERN.match(v):
        raise ValueError('Invalid email format')
    return v


class CamelModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


# =============================================================================
# REQUEST SCHEMAS
# =============================================================================

class EmailModel(CamelModel):
    email: str = Field(..., examples=["a@x.com"])

    @field_validator('email')
    @classmethod
    def validate_email(cls, v: str) -> str:
        return normalize_email(v)


class TokenRequest(EmailModel):
    """Identity claims to sign."""
    role: Optional[str] = Field(None, max_length=20)


class UserCreate(EmailModel):
    """Registration payload. The role is never taken from the client."""
    name: Optional[str] = Field(None, max_length=100, examples=["Alice"])


class MenuItemCreate(CamelModel):
    name: str = Field(..., min_length=1, max_length=200, examples=["Margherita"])
    recipe: Optional[str] = Field(None, max_length=2000)
    image: Optional[str] = Field(None, max_length=500)
    category: str = Field(..., min_length=1, max_length=50, examples=["pizza"])
    price: float = Field(..., gt=0, examples=[12.5])


class CartItemCreate(EmailModel):
    menu_item_id: uuid.UUID = Field(
        ...,
        validation_alias=AliasChoices("menuItemId", "menuId", "menu_item_id"),
    )
    name: Optional[str] = Field(None, max_length=200)
    image: Optional[str] = Field(None, max_length=500)
    price: float = Field(..., gt=0, examples=[10.0])


class PaymentIntentCreate(CamelModel):
    price: float = Field(..., gt=0, examples=[25.0])


class PaymentCreate(EmailModel):
    """A completed checkout as reported by the client after confirmation."""
    price: float = Field(..., ge=0, examples=[25.0])
    transaction_id: str = Field(..., min_length=1, max_length=255)
    cart_ids: List[uuid.UUID] = Field(default_factory=list)
    menu_item_ids: List[uuid.UUID] = Field(default_factory=list)
    status: str = Field(default="pending", max_length=20)


# =============================================================================
# RESPONSE SCHEMAS
# =============================================================================

class TokenResponse(CamelModel):
    token: str


class UserResponse(CamelModel):
    id: uuid.UUID
    name: Optional[str]
    email: str
    role: str
    created_at: datetime

    @field_validator('role', mode='before')
    @classmethod
    def role_value(cls, v):
        return getattr(v, 'value', v)


class AdminStatusResponse(CamelModel):
    admin: bool


class MenuItemResponse(CamelModel):
    id: uuid.UUID
    name: str
    recipe: Optional[str]
    image: Optional[str]
    category: str
    price: float


class ReviewResponse(CamelModel):
    id: uuid.UUID
    name: str
    details: Optional[str]
    rating: float


class CartItemResponse(CamelModel):
    id: uuid.UUID
    email: str
    menu_item_id: uuid.UUID
    name: Optional[str]
    image: Optional[str]
    price: float
    created_at: datetime


class PaymentResponse(CamelModel):
    id: uuid.UUID
    email: str
    price: float
    transaction_id: str
    cart_ids: List[uuid.UUID]
    menu_item_ids: List[uuid.UUID]
    status: str
    created_at: datetime


class InsertResult(CamelModel):
    acknowledged: bool = True
    inserted_id: uuid.UUID


class RegisterResult(InsertResult):
    existing: bool = False


class UpdateResult(CamelModel):
    acknowledged: bool = True
    matched_count: int
    modified_count: int


class DeleteResult(CamelModel):
    acknowledged: bool = True
    deleted_count: int


class PaymentIntentResponse(CamelModel):
    client_secret: str


class PaymentRecordResult(CamelModel):
    acknowledged: bool = True
    inserted_id: uuid.UUID
    duplicate: bool = False


class ReconciliationResponse(CamelModel):
    payment_result: PaymentRecordResult
    delete_result: DeleteResult


class AdminStats(CamelModel):
    user_count: int
    menu_item_count: int
    order_count: int
    total_revenue: float


class UserStats(CamelModel):
    order_count: int
    menu_count: int
    payment_count: int


class CategoryStats(CamelModel):
    category: str
    count: int
    total: float


class ErrorResponse(BaseModel):
    """Standard error response."""
    success: bool = False
    error: str
    detail: Optional[str] = None


class HealthResponse(BaseModel):
    """Health check response."""
    status: str
    database: str
    redis: str
    payment_service: str
    timestamp: datetime
