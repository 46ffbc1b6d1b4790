"""
Explicit validation of incoming payloads.

Each ``validate_*`` function takes a request schema and returns a
``ValidationResult`` carrying either the cleaned value ready for persistence
or the list of problems found. Handlers call ``unwrap()`` which raises a 400
with the first message.
"""
from decimal import Decimal
from typing import Optional, Generic, TypeVar, List
from email_validator import validate_email, EmailNotValidError
from pydantic import BaseModel

from tibeb.models import ContactMessageDB, ProductDB, OrderStatus
from tibeb.schemas import (
    SignupRequest, SigninRequest, ContactRequest, ProductPayload,
    OrderStatusUpdate, ProfileUpdate
)
from tibeb.shared.utils import ValidationException
from tibeb.shared.security_config import sanitize_input

T = TypeVar("T")

class ValidationResult(BaseModel, Generic[T]):
    value: Optional[T] = None
    errors: List[str] = []

    @property
    def ok(self) -> bool:
        return not self.errors

    def unwrap(self) -> T:
        if self.errors:
            raise ValidationException(self.errors[0], details=self.errors)
        return self.value

class Credentials(BaseModel):
    email: str
    password: str

class NewUser(BaseModel):
    first_name: str
    last_name: str
    email: str
    password: str

def _clean(value: Optional[str]) -> str:
    return value.strip() if isinstance(value, str) else ""

def normalize_email(value: Optional[str]) -> Optional[str]:
    """Lowercased, syntactically valid address, or None."""
    email = _clean(value).lower()
    if not email:
        return None
    try:
        validate_email(email, check_deliverability=False)
    except EmailNotValidError:
        return None
    return email

def validate_signup(payload: SignupRequest) -> ValidationResult[NewUser]:
    first_name = _clean(payload.first_name)
    last_name = _clean(payload.last_name)
    raw_email = _clean(payload.email)
    password = payload.password or ""

    if not (first_name and last_name and raw_email and password):
        return ValidationResult(errors=["Missing required fields"])
    # confirmPassword is optional; when sent it must match
    if payload.confirm_password is not None and payload.confirm_password != password:
        return ValidationResult(errors=["Passwords do not match"])
    email = normalize_email(raw_email)
    if email is None:
        return ValidationResult(errors=["Invalid email address"])

    return ValidationResult(value=NewUser(
        first_name=first_name, last_name=last_name, email=email, password=password
    ))

def validate_signin(payload: SigninRequest) -> ValidationResult[Credentials]:
    email = _clean(payload.email).lower()
    if not email or not payload.password:
        return ValidationResult(errors=["Missing email or password"])
    return ValidationResult(value=Credentials(email=email, password=payload.password))

def validate_contact(payload: ContactRequest) -> ValidationResult[ContactMessageDB]:
    full_name = _clean(payload.full_name)
    message = _clean(payload.message)
    raw_email = _clean(payload.email)
    if not (full_name and message and raw_email):
        return ValidationResult(errors=["Missing fields"])
    email = normalize_email(raw_email)
    if email is None:
        return ValidationResult(errors=["Invalid email address"])
    return ValidationResult(value=ContactMessageDB(
        full_name=sanitize_input(full_name),
        email=email,
        message=sanitize_input(message),
    ))

def _product_errors(fields: dict) -> List[str]:
    errors = []
    if "name" in fields and not fields["name"]:
        errors.append("Product name is required")
    if "category" in fields and not fields["category"]:
        errors.append("Product category is required")
    if "price" in fields and (fields["price"] is None or fields["price"] < Decimal(0)):
        errors.append("Price must be a non-negative number")
    if "inventory_count" in fields and (fields["inventory_count"] is None or fields["inventory_count"] < 0):
        errors.append("Inventory count must be a non-negative integer")
    if "images" in fields:
        if any(not isinstance(url, str) or not url.strip() for url in fields["images"]):
            errors.append("Image URLs must be non-empty strings")
    return errors

def _product_fields(payload: ProductPayload) -> dict:
    fields: dict = {}
    for key, value in payload.model_dump(exclude_unset=True).items():
        if key in ("name", "description", "category"):
            value = _clean(value)
        elif key == "images":
            value = [url.strip() for url in value] if value is not None else []
        elif key == "is_active" and value is None:
            continue
        fields[key] = value
    return fields

def validate_product(payload: ProductPayload) -> ValidationResult[ProductDB]:
    fields = _product_fields(payload)
    missing = [key for key in ("name", "price", "category") if key not in fields]
    if missing:
        return ValidationResult(errors=["Missing required fields: " + ", ".join(missing)])
    errors = _product_errors(fields)
    if errors:
        return ValidationResult(errors=errors)
    return ValidationResult(value=ProductDB(**fields))

def validate_product_update(payload: ProductPayload) -> ValidationResult[dict]:
    fields = _product_fields(payload)
    if not fields:
        return ValidationResult(errors=["No fields to update"])
    errors = _product_errors(fields)
    if errors:
        return ValidationResult(errors=errors)
    return ValidationResult(value=fields)

def validate_status(payload: OrderStatusUpdate) -> ValidationResult[OrderStatus]:
    allowed = [s.value for s in OrderStatus]
    if payload.status not in allowed:
        return ValidationResult(errors=["Status must be one of: " + ", ".join(allowed)])
    return ValidationResult(value=OrderStatus(payload.status))

def validate_profile_update(payload: ProfileUpdate) -> ValidationResult[dict]:
    """Returns the raw changes; a password is returned in clear under ``password``."""
    changes: dict = {}
    errors: List[str] = []
    sent = payload.model_dump(exclude_unset=True)

    for key in ("first_name", "last_name"):
        if key in sent:
            value = _clean(sent[key])
            if not value:
                errors.append("Name fields cannot be empty")
            changes[key] = value
    if "email" in sent:
        email = normalize_email(sent["email"])
        if email is None:
            errors.append("Invalid email address")
        changes["email"] = email
    if sent.get("password"):
        if payload.confirm_password is not None and payload.confirm_password != payload.password:
            errors.append("Passwords do not match")
        changes["password"] = payload.password

    if errors:
        return ValidationResult(errors=errors)
    if not changes:
        return ValidationResult(errors=["No fields to update"])
    return ValidationResult(value=changes)