"""Admin portal for reviewing and approving vendor registrations."""

import logging
from pathlib import Path
from typing import Optional

from fastapi import APIRouter, Depends, Form, Request
from fastapi.responses import HTMLResponse, RedirectResponse
from fastapi.templating import Jinja2Templates
from sqlalchemy.orm import Session

from . import services
from .auth import get_admin_principal, get_db
from .config import settings
from .models.user import User
from .notices import NoticeStore
from .schemas import MAX_RECORD_ID

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin", tags=["admin"])
templates = Jinja2Templates(directory=str(Path(__file__).parent / "templates"))
notices = NoticeStore(ttl_seconds=settings.notice_ttl_seconds)


def parse_vendor_id(raw: Optional[str]) -> Optional[int]:
    """Return ``raw`` as a positive integer, or ``None`` if it is not one.

    Only plain ASCII digits with an optional ``+`` sign are accepted, so
    ``"1_0"``, ``"07"`` and non-ASCII digits are rejected.
    """
    if raw is None:
        return None
    digits = raw.strip()
    if digits.startswith("+"):
        digits = digits[1:]
    if not (digits.isascii() and digits.isdigit()) or digits.startswith("0"):
        return None
    value = int(digits)
    return value if value <= MAX_RECORD_ID else None


@router.get("", response_class=HTMLResponse)
def admin_page(
    request: Request,
    notice: Optional[str] = None,
    admin: User = Depends(get_admin_principal),
    db: Session = Depends(get_db),
):
    """Render the queue of vendors waiting for approval."""

    message = notices.pop(notice)
    pending = services.list_pending_vendors(db)
    return templates.TemplateResponse(
        request,
        "admin.html",
        {"vendors": pending, "message": message, "admin": admin},
    )


@router.post("")
def submit_approval(
    vendor_id: Optional[str] = Form(None),
    approve_vendor: Optional[str] = Form(None),
    admin: User = Depends(get_admin_principal),
    db: Session = Depends(get_db),
):
    """Approve a vendor, then redirect back so a refresh cannot resubmit."""

    target = router.prefix
    parsed = parse_vendor_id(vendor_id)
    if approve_vendor is not None and parsed is not None:
        if services.approve_vendor(db, parsed):
            logger.info("admin %s approved vendor %s", admin.user_id, parsed)
            token = notices.push(f"Vendor ID #{parsed} has been approved successfully.")
        else:
            token = notices.push(f"Vendor ID #{parsed} was not found.")
        target = f"{target}?notice={token}"
    else:
        logger.info("ignored approval request with vendor_id=%r", vendor_id)
    return RedirectResponse(url=target, status_code=303)
