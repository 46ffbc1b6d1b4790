from fastapi import FastAPI, Depends, Header, Request, UploadFile, File, Query, BackgroundTasks, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from starlette.exceptions import HTTPException as StarletteHTTPException
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Optional, List
import os
import uvicorn

from tibeb import __version__
from tibeb.shared.utils import (
    get_db_client, settings, get_password_hash, verify_password, create_access_token,
    ErrorResponse, HealthResponse, ValidationException, NotFoundException,
    UnauthorizedException, ConflictException
)
from tibeb.shared.logging_config import setup_logging, RequestLoggingMiddleware
from tibeb.shared.security_config import setup_rate_limiting, SecurityHeadersMiddleware, limiter

from tibeb.access import AccessGate
from tibeb.accounts import UserStore, ContactStore
from tibeb.catalog import CatalogStore, ProductFilter
from tibeb.models import CartLine, Role, UserDB
from tibeb.notifications import Notifier
from tibeb.orders import OrderStore, OrderResolver
from tibeb.schemas import (
    SignupRequest, SigninRequest, ContactRequest, ProductPayload, OrderCreate,
    OrderStatusUpdate, ProfileUpdate, UserResponse, AuthResponse, ContactCreated,
    ContactResponse, ProductResponse, ProductListResponse, OrderItemResponse,
    OrderResponse, OkResponse
)
from tibeb.uploads import save_images
from tibeb.validation import (
    validate_signup, validate_signin, validate_contact, validate_product,
    validate_product_update, validate_status, validate_profile_update
)

SERVICE_NAME = "tibeb-storefront"

# Setup Logging
logger = setup_logging(SERVICE_NAME, settings.LOG_LEVEL)

app = FastAPI(title="TIBEB Storefront", version=__version__)

# Security Setup
setup_rate_limiting(app)
app.add_middleware(SecurityHeadersMiddleware)
app.add_middleware(RequestLoggingMiddleware, service_name=SERVICE_NAME)

# CORS Configuration
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.mount(
    settings.UPLOAD_URL_PREFIX,
    StaticFiles(directory=settings.UPLOAD_DIR, check_dir=False),
    name="uploads",
)

@app.on_event("startup")
async def startup_db_client():
    app.mongodb_client = get_db_client()
    app.mongodb = app.mongodb_client[settings.MONGO_DB_NAME]

    app.catalog = CatalogStore(app.mongodb)
    app.users = UserStore(app.mongodb)
    app.contacts = ContactStore(app.mongodb)
    app.orders = OrderStore(app.mongodb, app.catalog, app.users)
    app.resolver = OrderResolver(app.catalog, app.orders)
    app.gate = AccessGate(app.users)
    app.notifier = Notifier(settings.NOTIFY_WEBHOOK_URL, settings.NOTIFY_TIMEOUT_SECONDS)

    # Indexes
    for store in (app.catalog, app.users, app.contacts, app.orders):
        await store.ensure_indexes()
    os.makedirs(settings.UPLOAD_DIR, exist_ok=True)

@app.on_event("shutdown")
async def shutdown_db_client():
    app.mongodb_client.close()

# --- Error Handlers ---
@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    body = ErrorResponse(error=str(exc.detail), details=getattr(exc, "details", None))
    return JSONResponse(
        status_code=exc.status_code,
        content=jsonable_encoder(body),
        headers=getattr(exc, "headers", None),
    )

@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    body = ErrorResponse(error="Invalid request", details=jsonable_encoder(exc.errors()))
    return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content=jsonable_encoder(body))

@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.error("Unhandled error", exc_info=exc, extra={"path": request.url.path})
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=ErrorResponse(error="Server error").model_dump(),
    )

# --- Dependencies ---
async def get_optional_user(request: Request, authorization: Optional[str] = Header(None)) -> Optional[dict]:
    user = await app.gate.identify(authorization)
    if user:
        request.state.user_id = user["id"]
    return user

async def get_current_user(user: Optional[dict] = Depends(get_optional_user)) -> dict:
    if user is None:
        raise UnauthorizedException("Authentication required")
    return user

async def get_current_admin(user: dict = Depends(get_current_user)) -> dict:
    return app.gate.require_admin(user)

# --- Helpers ---
def issue_token(user: dict) -> str:
    return create_access_token(data={"sub": user["id"], "role": user["role"]})

def parse_price(value: Optional[str], name: str) -> Optional[Decimal]:
    if value is None or not value.strip():
        return None
    try:
        price = Decimal(value.strip())
    except InvalidOperation:
        raise ValidationException(f"{name} must be a number")
    if not price.is_finite():
        raise ValidationException(f"{name} must be a number")
    return price

def order_view(order: dict) -> OrderResponse:
    items = [
        OrderItemResponse(
            product=item.get("product", item["product_id"]),
            quantity=item["quantity"],
            price_at_purchase=item["price_at_purchase"],
        )
        for item in order["items"]
    ]
    return OrderResponse(
        id=order["id"],
        user=order.get("user", order["user_id"]),
        items=items,
        total_amount=order["total_amount"],
        status=order["status"],
        created_at=order["created_at"],
        updated_at=order.get("updated_at"),
    )

# --- Endpoints ---

@app.get("/")
async def root():
    return {"status": "ok", "service": SERVICE_NAME}

# Accounts
@app.post("/api/signup", response_model=AuthResponse, status_code=status.HTTP_201_CREATED)
@limiter.limit("10/minute")
async def signup(payload: SignupRequest, request: Request, background_tasks: BackgroundTasks):
    new_user = validate_signup(payload).unwrap()
    if await app.users.find_by_email(new_user.email):
        raise ConflictException("Email already in use")

    role = Role.ADMIN if new_user.email in settings.admin_emails else Role.USER
    user = await app.users.create(UserDB(
        first_name=new_user.first_name,
        last_name=new_user.last_name,
        email=new_user.email,
        password_hash=get_password_hash(new_user.password),
        role=role,
    ))
    logger.info("User signed up", extra={"user_id": user["id"]})
    background_tasks.add_task(
        app.notifier.deliver, "user.signed_up", {"id": user["id"], "email": user["email"]}
    )
    return AuthResponse(token=issue_token(user), user=UserResponse(**user))

@app.post("/api/signin", response_model=AuthResponse)
@limiter.limit("5/minute")
async def signin(payload: SigninRequest, request: Request):
    credentials = validate_signin(payload).unwrap()
    user = await app.users.find_by_email(credentials.email)
    if not user or not verify_password(credentials.password, user["password_hash"]):
        raise UnauthorizedException("Invalid credentials")
    return AuthResponse(token=issue_token(user), user=UserResponse(**user))

@app.get("/api/me", response_model=UserResponse)
async def get_profile(user: dict = Depends(get_current_user)):
    return UserResponse(**user)

@app.put("/api/me", response_model=UserResponse)
async def update_profile(payload: ProfileUpdate, user: dict = Depends(get_current_user)):
    changes = validate_profile_update(payload).unwrap()
    if changes.get("email") and changes["email"] != user["email"]:
        if await app.users.find_by_email(changes["email"]):
            raise ConflictException("Email already in use")
    if "password" in changes:
        changes["password_hash"] = get_password_hash(changes.pop("password"))

    updated = await app.users.update(user["id"], changes)
    if not updated:
        raise NotFoundException("User not found")
    return UserResponse(**updated)

@app.post("/api/contact", response_model=ContactCreated, status_code=status.HTTP_201_CREATED)
@limiter.limit("10/minute")
async def create_contact(payload: ContactRequest, request: Request, background_tasks: BackgroundTasks):
    message = validate_contact(payload).unwrap()
    message_id = await app.contacts.create(message)
    background_tasks.add_task(
        app.notifier.deliver, "contact.received",
        {"id": message_id, "fullName": message.full_name, "email": message.email},
    )
    return ContactCreated(id=message_id)

# Products
@app.get("/api/products", response_model=ProductListResponse)
@limiter.limit("60/minute")
async def list_products(
    request: Request,
    q: Optional[str] = None,
    category: Optional[str] = None,
    min_price: Optional[str] = Query(None, alias="minPrice"),
    max_price: Optional[str] = Query(None, alias="maxPrice"),
    page: Optional[str] = None,
    limit: Optional[str] = None
):
    product_filter = ProductFilter(
        q=q,
        category=category,
        min_price=parse_price(min_price, "minPrice"),
        max_price=parse_price(max_price, "maxPrice"),
    )
    result = await app.catalog.query(product_filter, page, limit)
    return ProductListResponse(
        items=[ProductResponse(**p) for p in result.items],
        total=result.total,
        page=result.page,
        pages=result.pages,
    )

@app.get("/api/products/{product_id}", response_model=ProductResponse)
async def get_product(product_id: str):
    return ProductResponse(**await app.catalog.get_active(product_id))

@app.post("/api/products", response_model=ProductResponse, status_code=status.HTTP_201_CREATED)
async def create_product(payload: ProductPayload, admin: dict = Depends(get_current_admin)):
    product = validate_product(payload).unwrap()
    created = await app.catalog.create(product)
    logger.info("Product created", extra={"product_id": created["id"], "user_id": admin["id"]})
    return ProductResponse(**created)

@app.put("/api/products/{product_id}", response_model=ProductResponse)
async def update_product(product_id: str, payload: ProductPayload, admin: dict = Depends(get_current_admin)):
    fields = validate_product_update(payload).unwrap()
    updated = await app.catalog.update(product_id, fields)
    logger.info("Product updated", extra={"product_id": product_id, "user_id": admin["id"]})
    return ProductResponse(**updated)

@app.delete("/api/products/{product_id}", response_model=OkResponse)
async def delete_product(product_id: str, admin: dict = Depends(get_current_admin)):
    await app.catalog.delete(product_id)
    logger.info("Product deleted", extra={"product_id": product_id, "user_id": admin["id"]})
    return OkResponse()

@app.post("/api/products/{product_id}/images", response_model=ProductResponse)
async def upload_product_images(
    product_id: str,
    images: List[UploadFile] = File(...),
    admin: dict = Depends(get_current_admin)
):
    await app.catalog.get(product_id)
    urls = await save_images(
        images, settings.UPLOAD_DIR, settings.UPLOAD_URL_PREFIX,
        settings.MAX_UPLOAD_FILES, settings.MAX_UPLOAD_BYTES
    )
    return ProductResponse(**await app.catalog.append_images(product_id, urls))

# Orders
@app.post("/api/orders", response_model=OrderResponse, status_code=status.HTTP_201_CREATED)
async def create_order(
    payload: OrderCreate,
    background_tasks: BackgroundTasks,
    user: dict = Depends(get_current_user)
):
    # Prices never come from the client; only product and quantity are read
    lines = [CartLine(product_id=item.product, quantity=item.quantity) for item in payload.items or []]
    order = await app.resolver.place_order(user["id"], lines)
    background_tasks.add_task(app.notifier.deliver, "order.placed", {
        "orderId": order["id"],
        "userId": user["id"],
        "email": user["email"],
        "totalAmount": str(order["total_amount"]),
    })
    return order_view(order)

@app.get("/api/orders/my", response_model=List[OrderResponse])
async def list_my_orders(user: dict = Depends(get_current_user)):
    return [order_view(o) for o in await app.orders.list_by_user(user["id"])]

@app.get("/api/orders", response_model=List[OrderResponse])
async def list_all_orders(admin: dict = Depends(get_current_admin)):
    return [order_view(o) for o in await app.orders.list_all()]

@app.get("/api/orders/{order_id}", response_model=OrderResponse)
async def get_order(order_id: str, user: dict = Depends(get_current_user)):
    order = await app.orders.get(order_id)
    if order["user_id"] != user["id"] and user["role"] != Role.ADMIN.value:
        raise NotFoundException("Order not found")
    return order_view((await app.orders.expand([order]))[0])

@app.put("/api/orders/{order_id}/status", response_model=OrderResponse)
async def update_order_status(
    order_id: str,
    payload: OrderStatusUpdate,
    admin: dict = Depends(get_current_admin)
):
    new_status = validate_status(payload).unwrap()
    order = await app.orders.update_status(order_id, new_status)
    logger.info("Order status updated", extra={"order_id": order_id, "user_id": admin["id"]})
    return order_view(order)

@app.put("/api/orders/{order_id}/cancel", response_model=OrderResponse)
async def cancel_order(order_id: str, user: dict = Depends(get_current_user)):
    return order_view(await app.orders.cancel(order_id, user["id"]))

# Admin listings
@app.get("/api/admin/users", response_model=List[UserResponse])
async def list_users(admin: dict = Depends(get_current_admin)):
    return [UserResponse(**u) for u in await app.users.list_all()]

@app.get("/api/admin/contacts", response_model=List[ContactResponse])
async def list_contacts(admin: dict = Depends(get_current_admin)):
    return [ContactResponse(**c) for c in await app.contacts.list_all()]

@app.get("/health", response_model=HealthResponse)
async def health_check():
    try:
        await app.mongodb_client.admin.command('ping')
        db_status = "connected"
    except Exception:
        db_status = "disconnected"

    if db_status != "connected":
        logger.error(f"Health Check Failed: DB={db_status}")
        raise StarletteHTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=f"Service Unhealthy: DB={db_status}"
        )

    return HealthResponse(
        service=SERVICE_NAME,
        status="healthy",
        timestamp=datetime.utcnow(),
        version=__version__,
        database=db_status
    )

def run():
    uvicorn.run("tibeb.main:app", host=settings.HOST, port=settings.PORT)

if __name__ == "__main__":
    run()
