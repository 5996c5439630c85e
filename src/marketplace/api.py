"""FastAPI application exposing the marketplace account and order endpoints."""

import logging
from contextlib import asynccontextmanager
from typing import Any, Dict

from fastapi import Depends, FastAPI, Path, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from prometheus_client import Counter, make_asgi_app
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address
from sqlalchemy.orm import Session
from starlette.exceptions import HTTPException as StarletteHTTPException

from . import services
from .admin import router as admin_router
from .auth import create_access_token, get_db
from .config import settings
from .database import SessionLocal, init_db
from .errors import ConflictError, MethodNotAllowed, ServiceError, ValidationError
from .schemas import (
    MAX_RECORD_ID,
    LoginRequest,
    OrderCreateRequest,
    OrderResponse,
    RegisterRequest,
    StatusUpdateRequest,
)

_LOGGING_CONFIGURED = False


def configure_logging() -> None:
    """Configure process-wide logging from settings."""
    global _LOGGING_CONFIGURED
    if _LOGGING_CONFIGURED:
        return
    level = getattr(logging, settings.log_level.upper(), logging.INFO)
    logging.basicConfig(
        level=level,
        format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
    )
    _LOGGING_CONFIGURED = True


configure_logging()
logger = logging.getLogger(__name__)


def bootstrap_admin() -> None:
    """Create the configured admin account on first start."""
    if not (settings.admin_username and settings.admin_email and settings.admin_password):
        return
    db = SessionLocal()
    try:
        services.create_admin_user(
            db, settings.admin_username, settings.admin_email, settings.admin_password
        )
    except ConflictError:
        logger.info("admin account %s already present", settings.admin_username)
    finally:
        db.close()


@asynccontextmanager
async def lifespan(app: FastAPI):
    bootstrap_admin()
    yield


limiter = Limiter(key_func=get_remote_address)
app = FastAPI(title=settings.api_title, lifespan=lifespan)
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
app.include_router(admin_router)
app.mount("/metrics", make_asgi_app())
init_db()

# Prometheus counter to track API requests by method, endpoint and status code
REQUEST_COUNTER = Counter(
    "api_requests_total",
    "Total API requests",
    ["method", "endpoint", "status"],
)


def success(message: str, **payload: Any) -> Dict[str, Any]:
    return {"success": True, "status": "success", "message": message, **payload}


def error_body(message: str) -> Dict[str, Any]:
    return {"success": False, "status": "error", "error": message}


def _describe_validation_error(exc: RequestValidationError) -> str:
    """Turn the first pydantic error into a single client-facing sentence."""
    errors = exc.errors()
    if not errors:
        return ValidationError.default_message
    first = errors[0]
    if first.get("type") == "value_error" and first.get("ctx", {}).get("error"):
        message = str(first["ctx"]["error"])
    else:
        message = first.get("msg", ValidationError.default_message)
    fields = [str(part) for part in first.get("loc", ()) if part != "body"]
    if fields and first.get("type") != "json_invalid":
        return f"Invalid input for {'.'.join(fields)}: {message}"
    return f"Invalid input: {message}"


@app.exception_handler(ServiceError)
async def service_error_handler(request: Request, exc: ServiceError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content=error_body(exc.message))


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    return JSONResponse(
        status_code=ValidationError.status_code,
        content=error_body(_describe_validation_error(exc)),
    )


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    if exc.status_code == MethodNotAllowed.status_code:
        headers = dict(exc.headers or {})
        allowed = headers.get("Allow", "")
        message = MethodNotAllowed.default_message
        if allowed != "POST":
            message = f"Invalid request method. Allowed: {allowed or 'none'}."
        return JSONResponse(
            status_code=exc.status_code,
            content=error_body(message),
            headers=headers,
        )
    return JSONResponse(status_code=exc.status_code, content=error_body(str(exc.detail)))


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=500, content=error_body("The server encountered an unexpected error.")
    )


@app.middleware("http")
async def log_requests(request: Request, call_next):
    """Log incoming requests and their outcomes while updating metrics."""
    logger.info("request %s %s", request.method, request.url.path)
    try:
        response = await call_next(request)
        REQUEST_COUNTER.labels(
            method=request.method,
            endpoint=request.url.path,
            status=str(response.status_code),
        ).inc()
        logger.info(
            "response %s %s status %s",
            request.method,
            request.url.path,
            response.status_code,
        )
        return response
    except Exception:
        REQUEST_COUNTER.labels(
            method=request.method,
            endpoint=request.url.path,
            status="500",
        ).inc()
        logger.exception(
            "error handling %s %s", request.method, request.url.path
        )
        raise


@app.post("/api/user/register", status_code=201)
@limiter.limit(settings.auth_rate_limit)
def register(request: Request, payload: RegisterRequest, db: Session = Depends(get_db)):
    """Register a user or a vendor; vendors start unapproved."""

    user = services.register_user(db, payload)
    message = "Registration successful."
    if user.role == "vendor":
        message += " Your vendor account is now pending approval."
    return success(message)


@app.post("/api/user/login")
@limiter.limit(settings.auth_rate_limit)
def login(request: Request, payload: LoginRequest, db: Session = Depends(get_db)):
    """Authenticate and hand back the account identity with an access token."""

    result = services.authenticate(db, payload.username, payload.password)
    body = success(
        "Login successful.",
        user_id=result.user_id,
        role=result.role,
        access_token=create_access_token(result.user_id, result.role),
        token_type="bearer",
    )
    if result.vendor_id is not None:
        body["vendor_id"] = result.vendor_id
    return body


@app.post("/api/order/create", status_code=201)
def create_order(payload: OrderCreateRequest, db: Session = Depends(get_db)):
    """Place a new order; it always starts as ``pending``."""

    order = services.create_order(db, payload)
    return success("Order created successfully.", order_id=order.order_id)


@app.post("/api/order/update_status")
def update_order_status(payload: StatusUpdateRequest, db: Session = Depends(get_db)):
    """Change the status of an order owned by the requesting vendor."""

    changed = services.update_order_status(
        db,
        vendor_id=payload.vendor_id,
        order_id=payload.order_id,
        new_status=payload.new_status,
        enforce_transitions=settings.enforce_status_transitions,
    )
    if changed:
        return success("Order status updated successfully.", changed=True)
    return success(
        "Order status was already set to the requested value. No change made.",
        changed=False,
    )


@app.get("/api/order/detail/{order_id}")
def get_order(
    order_id: int = Path(..., gt=0, le=MAX_RECORD_ID), db: Session = Depends(get_db)
):
    order = services.get_order(db, order_id)
    return success("Order found.", order=OrderResponse.model_validate(order).model_dump(mode="json"))
