from pydantic import BaseModel
from pydantic.alias_generators import to_camel
from typing import Optional, List, Union
from decimal import Decimal
from datetime import datetime

class CamelModel(BaseModel):
    """Snake_case in Python, camelCase on the wire."""

    class Config:
        alias_generator = to_camel
        populate_by_name = True

# --- Requests ---
# Fields are optional so missing input reaches the validators and comes back as a 400.

class SignupRequest(CamelModel):
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    email: Optional[str] = None
    password: Optional[str] = None
    confirm_password: Optional[str] = None

class SigninRequest(CamelModel):
    email: Optional[str] = None
    password: Optional[str] = None

class ContactRequest(CamelModel):
    full_name: Optional[str] = None
    email: Optional[str] = None
    message: Optional[str] = None

class ProductPayload(CamelModel):
    name: Optional[str] = None
    description: Optional[str] = None
    price: Optional[Decimal] = None
    category: Optional[str] = None
    images: Optional[List[str]] = None
    inventory_count: Optional[int] = None
    is_active: Optional[bool] = None

class OrderLineRequest(CamelModel):
    product: Optional[str] = None
    quantity: Optional[int] = None

class OrderCreate(CamelModel):
    items: Optional[List[OrderLineRequest]] = None

class OrderStatusUpdate(CamelModel):
    status: Optional[str] = None

class ProfileUpdate(CamelModel):
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    email: Optional[str] = None
    password: Optional[str] = None
    confirm_password: Optional[str] = None

# --- Responses ---

class UserResponse(CamelModel):
    id: str
    first_name: str
    last_name: str
    email: str
    role: str
    created_at: datetime

class AuthResponse(CamelModel):
    token: str
    user: UserResponse

class ContactCreated(CamelModel):
    id: str

class ContactResponse(CamelModel):
    id: str
    full_name: str
    email: str
    message: str
    created_at: datetime

class ProductResponse(CamelModel):
    id: str
    name: str
    description: str
    price: Decimal
    category: str
    images: List[str]
    inventory_count: int
    is_active: bool
    created_at: datetime
    updated_at: Optional[datetime] = None

class ProductListResponse(CamelModel):
    items: List[ProductResponse]
    total: int
    page: int
    pages: int

class OrderItemResponse(CamelModel):
    # Expanded to the product in listings; the bare id when the product is gone
    product: Union[ProductResponse, str]
    quantity: int
    price_at_purchase: Decimal

class OrderResponse(CamelModel):
    id: str
    user: Union[UserResponse, str]
    items: List[OrderItemResponse]
    total_amount: Decimal
    status: str
    created_at: datetime
    updated_at: Optional[datetime] = None

class OkResponse(CamelModel):
    ok: bool = True
