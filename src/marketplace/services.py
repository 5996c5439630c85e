"""Service layer for identity, vendor approval and order lifecycle."""

import logging
from typing import Dict, FrozenSet, List, Optional

from markupsafe import Markup
from prometheus_client import Counter
from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError as SAIntegrityError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from .auth import hash_password, verify_password
from .database import Order, Vendor
from .errors import (
    ConflictError,
    Forbidden,
    IntegrityError,
    InvalidCredentials,
    InvalidTransition,
    NotFound,
    PendingApproval,
    PersistenceError,
    ServiceError,
    ValidationError,
)
from .models.user import User
from .schemas import (
    TARGET_STATUSES,
    LoginResult,
    OrderCreateRequest,
    RegisterRequest,
    VendorSummary,
)


logger = logging.getLogger(__name__)

REGISTRATION_COUNTER = Counter(
    "user_registrations_total", "Total accounts registered", ["role"]
)
ORDER_COUNTER = Counter("orders_created_total", "Total orders created")
STATUS_UPDATE_COUNTER = Counter(
    "order_status_updates_total", "Total order status changes applied", ["status"]
)
APPROVAL_COUNTER = Counter("vendor_approvals_total", "Total vendor approvals")

# Allowed order status edges; completed and cancelled are terminal
STATUS_TRANSITIONS: Dict[str, FrozenSet[str]] = {
    "pending": frozenset({"confirmed", "cancelled"}),
    "confirmed": frozenset({"in_progress", "cancelled"}),
    "in_progress": frozenset({"completed", "cancelled"}),
    "completed": frozenset(),
    "cancelled": frozenset(),
}


def _handle_service_error(session: Session, exc: Exception) -> None:
    """Rollback the transaction and translate store failures."""
    session.rollback()
    if isinstance(exc, ServiceError):
        raise exc
    logger.exception("service layer error", exc_info=exc)
    if isinstance(exc, SQLAlchemyError):
        raise PersistenceError() from exc
    raise exc


def sanitize_details(details: Optional[str]) -> Optional[str]:
    """Strip markup from free text, returning ``None`` when nothing is left."""
    if details is None:
        return None
    cleaned = Markup(details).striptags()
    return cleaned or None


def register_user(session: Session, payload: RegisterRequest) -> User:
    """Create a user, plus a vendor profile for vendors, in one transaction."""

    logger.info("register username=%s role=%s", payload.username, payload.role)
    try:
        if _account_exists(session, payload.username, payload.email):
            raise ConflictError("A user with this username or email already exists.")

        user = User(
            username=payload.username,
            email=payload.email,
            password_hash=hash_password(payload.password),
            role=payload.role,
        )
        session.add(user)
        # Assigns user_id without committing
        session.flush()

        if payload.role == "vendor":
            session.add(
                Vendor(
                    user_id=user.user_id,
                    company_name=payload.company_name,
                    description=payload.description,
                )
            )
        session.commit()
        session.refresh(user)
        REGISTRATION_COUNTER.labels(role=payload.role).inc()
        logger.info("registered user id=%s role=%s", user.user_id, user.role)
        return user
    except SAIntegrityError as exc:
        session.rollback()
        # A concurrent registration may have claimed the name after our check
        if _account_exists(session, payload.username, payload.email):
            logger.warning("registration conflict username=%s", payload.username)
            raise ConflictError("A user with this username or email already exists.") from exc
        _handle_service_error(session, exc)
    except Exception as exc:
        _handle_service_error(session, exc)


def _account_exists(session: Session, username: str, email: str) -> bool:
    return (
        session.query(User.user_id)
        .filter(or_(User.username == username, User.email == email))
        .first()
        is not None
    )


def create_admin_user(session: Session, username: str, email: str, password: str) -> User:
    """Create an administrator account; admins cannot self-register."""

    try:
        if _account_exists(session, username, email):
            raise ConflictError("A user with this username or email already exists.")
        user = User(
            username=username,
            email=email,
            password_hash=hash_password(password),
            role="admin",
        )
        session.add(user)
        session.commit()
        session.refresh(user)
        logger.info("created admin id=%s", user.user_id)
        return user
    except Exception as exc:
        _handle_service_error(session, exc)


def authenticate(session: Session, username: str, password: str) -> LoginResult:
    """Verify credentials and, for vendors, the approval gate.

    Unknown usernames and wrong passwords raise the same
    :class:`InvalidCredentials` so callers cannot tell which one failed.
    """
    try:
        user = session.query(User).filter(User.username == username).first()
        if user is None or not verify_password(password, user.password_hash):
            logger.info("login rejected username=%s", username)
            raise InvalidCredentials()

        vendor_id = None
        if user.role == "vendor":
            vendor = session.query(Vendor).filter(Vendor.user_id == user.user_id).first()
            if vendor is None:
                logger.error("vendor user id=%s has no vendor profile", user.user_id)
                raise IntegrityError()
            if not vendor.is_approved:
                raise PendingApproval()
            vendor_id = vendor.vendor_id

        logger.info("login ok user=%s role=%s", user.user_id, user.role)
        return LoginResult(user_id=user.user_id, role=user.role, vendor_id=vendor_id)
    except Exception as exc:
        _handle_service_error(session, exc)


def list_pending_vendors(session: Session) -> List[VendorSummary]:
    """Return unapproved vendors, oldest registration first."""

    try:
        rows = (
            session.query(
                Vendor.vendor_id,
                Vendor.company_name,
                Vendor.description,
                Vendor.created_at,
                User.username,
                User.email,
            )
            .join(User, Vendor.user_id == User.user_id)
            .filter(Vendor.is_approved.is_(False))
            .order_by(Vendor.created_at.asc(), Vendor.vendor_id.asc())
            .all()
        )
        return [VendorSummary(**row._asdict()) for row in rows]
    except Exception as exc:
        _handle_service_error(session, exc)


def approve_vendor(session: Session, vendor_id: int) -> bool:
    """Mark a vendor approved. Returns ``False`` when the vendor does not exist.

    Approving an already approved vendor is a successful no-op.
    """
    logger.info("approve vendor id=%s", vendor_id)
    try:
        vendor = session.get(Vendor, vendor_id)
        if vendor is None:
            return False
        if not vendor.is_approved:
            vendor.is_approved = True
            session.commit()
            APPROVAL_COUNTER.inc()
            logger.info("approved vendor id=%s", vendor_id)
        return True
    except Exception as exc:
        _handle_service_error(session, exc)


def create_order(session: Session, payload: OrderCreateRequest) -> Order:
    """Persist a new order in the ``pending`` state."""

    logger.info(
        "create order user=%s vendor=%s service=%s",
        payload.user_id,
        payload.vendor_id,
        payload.service_id,
    )
    try:
        order = Order(
            user_id=payload.user_id,
            vendor_id=payload.vendor_id,
            service_id=payload.service_id,
            order_details=sanitize_details(payload.order_details),
            total_amount=payload.total_amount,
            status="pending",
        )
        session.add(order)
        session.commit()
        session.refresh(order)
        ORDER_COUNTER.inc()
        logger.info("created order id=%s", order.order_id)
        return order
    except Exception as exc:
        _handle_service_error(session, exc)


def get_order(session: Session, order_id: int) -> Order:
    try:
        order = session.get(Order, order_id)
        if order is None:
            raise NotFound("Order not found.")
        return order
    except Exception as exc:
        _handle_service_error(session, exc)


def update_order_status(
    session: Session,
    vendor_id: int,
    order_id: int,
    new_status: str,
    enforce_transitions: bool = True,
) -> bool:
    """Move an order owned by ``vendor_id`` to ``new_status``.

    Returns ``True`` when the status changed and ``False`` when it already
    had the requested value.
    """
    logger.info(
        "update order status order=%s vendor=%s status=%s", order_id, vendor_id, new_status
    )
    try:
        if new_status not in TARGET_STATUSES:
            raise ValidationError(
                "Invalid new_status. Must be one of: " + ", ".join(TARGET_STATUSES) + "."
            )

        order = session.get(Order, order_id)
        if order is None:
            raise NotFound("Order not found.")
        if order.vendor_id != vendor_id:
            logger.warning(
                "vendor %s tried to update order %s owned by vendor %s",
                vendor_id,
                order_id,
                order.vendor_id,
            )
            raise Forbidden("Unauthorized. You do not have permission to update this order.")

        current = order.status
        if current == new_status:
            return False
        if enforce_transitions and new_status not in STATUS_TRANSITIONS.get(current, ()):
            raise InvalidTransition(
                f"Cannot change order status from '{current}' to '{new_status}'."
            )

        query = session.query(Order).filter(
            Order.order_id == order_id, Order.vendor_id == vendor_id
        )
        if enforce_transitions:
            query = query.filter(Order.status == current)
        updated = query.update({Order.status: new_status}, synchronize_session=False)
        if updated == 0:
            raise ConflictError("The order was changed by another request. Please retry.")
        session.commit()
        STATUS_UPDATE_COUNTER.labels(status=new_status).inc()
        logger.info("order %s status %s -> %s", order_id, current, new_status)
        return True
    except Exception as exc:
        _handle_service_error(session, exc)
