import pytest

from marketplace import services
from marketplace.database import Order, Vendor
from marketplace.errors import (
    ConflictError,
    Forbidden,
    InvalidCredentials,
    InvalidTransition,
    NotFound,
    PendingApproval,
    PersistenceError,
    ValidationError,
)
from marketplace.models.user import User
from marketplace.schemas import OrderCreateRequest, RegisterRequest


def vendor_payload(username="shop", **extra):
    body = {
        "username": username,
        "password": "secret",
        "email": f"{username}@example.com",
        "role": "vendor",
        "company_name": "  Shop Ltd ",
    }
    body.update(extra)
    return RegisterRequest(**body)


def make_order(session, vendor_id=2):
    payload = OrderCreateRequest(user_id=1, vendor_id=vendor_id, service_id=3, total_amount=10)
    return services.create_order(session, payload)


def test_register_vendor_creates_both_rows(session):
    user = services.register_user(session, vendor_payload())
    vendor = session.query(Vendor).filter(Vendor.user_id == user.user_id).one()
    assert user.role == "vendor"
    assert vendor.company_name == "Shop Ltd"
    assert vendor.is_approved is False
    assert vendor.created_at is not None


def test_register_rolls_back_user_when_vendor_insert_fails(session):
    # Bypasses validation so the vendor row violates NOT NULL
    payload = RegisterRequest.model_construct(
        username="broken",
        password="secret",
        email="broken@example.com",
        role="vendor",
        company_name=None,
        description=None,
    )
    with pytest.raises(PersistenceError):
        services.register_user(session, payload)
    assert session.query(User).count() == 0
    assert session.query(Vendor).count() == 0


def test_register_conflict_on_username(session):
    services.register_user(session, vendor_payload())
    with pytest.raises(ConflictError):
        services.register_user(session, vendor_payload(email="new@example.com"))


def test_authenticate_vendor_flow(session):
    user = services.register_user(session, vendor_payload())
    with pytest.raises(PendingApproval):
        services.authenticate(session, "shop", "secret")

    vendor = session.query(Vendor).filter(Vendor.user_id == user.user_id).one()
    assert services.approve_vendor(session, vendor.vendor_id) is True

    result = services.authenticate(session, "shop", "secret")
    assert result.user_id == user.user_id
    assert result.role == "vendor"
    assert result.vendor_id == vendor.vendor_id


def test_authenticate_wrong_password(session):
    services.register_user(session, vendor_payload())
    with pytest.raises(InvalidCredentials):
        services.authenticate(session, "shop", "Secret")


def test_list_pending_vendors_skips_approved(session):
    services.register_user(session, vendor_payload("one"))
    services.register_user(session, vendor_payload("two"))
    pending = services.list_pending_vendors(session)
    assert [row.username for row in pending] == ["one", "two"]

    services.approve_vendor(session, pending[0].vendor_id)
    assert [row.username for row in services.list_pending_vendors(session)] == ["two"]


def test_approve_missing_vendor(session):
    assert services.approve_vendor(session, 99) is False


def test_create_admin_user(session):
    admin = services.create_admin_user(session, "root", "root@example.com", "pw")
    assert admin.role == "admin"
    assert services.authenticate(session, "root", "pw").role == "admin"
    with pytest.raises(ConflictError):
        services.create_admin_user(session, "root", "other@example.com", "pw")


@pytest.mark.parametrize(
    "raw, expected",
    [
        (None, None),
        ("plain text", "plain text"),
        ("<p>Hello</p> <i>world</i>", "Hello world"),
        ("<br/>", None),
    ],
)
def test_sanitize_details(raw, expected):
    assert services.sanitize_details(raw) == expected


def test_update_status_checks_ownership_before_transition(session):
    order = make_order(session)
    with pytest.raises(Forbidden):
        services.update_order_status(session, 5, order.order_id, "completed")


def test_update_status_missing_order(session):
    with pytest.raises(NotFound):
        services.update_order_status(session, 2, 1, "confirmed")


def test_update_status_rejects_pending_target(session):
    order = make_order(session)
    with pytest.raises(ValidationError):
        services.update_order_status(session, 2, order.order_id, "pending")


def test_update_status_same_value_reports_no_change(session):
    order = make_order(session)
    assert services.update_order_status(session, 2, order.order_id, "cancelled") is True
    assert services.update_order_status(session, 2, order.order_id, "cancelled") is False


def test_terminal_status_is_final_when_enforced(session):
    order = make_order(session)
    services.update_order_status(session, 2, order.order_id, "cancelled")
    with pytest.raises(InvalidTransition):
        services.update_order_status(session, 2, order.order_id, "confirmed")


def test_permissive_transitions(session):
    order = make_order(session)
    for new_status in ["completed", "confirmed", "cancelled", "in_progress"]:
        assert services.update_order_status(
            session, 2, order.order_id, new_status, enforce_transitions=False
        )
    session.expire_all()
    assert session.get(Order, order.order_id).status == "in_progress"


def test_register_conflict_detected_at_commit(session, monkeypatch):
    services.register_user(session, vendor_payload())
    real_exists = services._account_exists
    calls = []

    # The first check misses, as if another request registered in between
    def racing_exists(db, username, email):
        calls.append(username)
        if len(calls) == 1:
            return False
        return real_exists(db, username, email)

    monkeypatch.setattr(services, "_account_exists", racing_exists)
    with pytest.raises(ConflictError):
        services.register_user(session, vendor_payload(email="new@example.com"))
    assert len(calls) == 2
    assert session.query(User).count() == 1
    assert session.query(Vendor).count() == 1
