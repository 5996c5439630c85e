"""Database setup for users, vendors and orders."""

from datetime import datetime

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
    create_engine,
)
from sqlalchemy.orm import declarative_base, sessionmaker

from .config import settings

ORDER_STATUSES = ("pending", "confirmed", "in_progress", "completed", "cancelled")


def _connect_args(url: str) -> dict:
    # SQLite connections are shared with FastAPI's worker threads
    if url.startswith("sqlite"):
        return {"check_same_thread": False}
    return {}


engine = create_engine(
    settings.database_url,
    connect_args=_connect_args(settings.database_url),
    pool_pre_ping=True,
    future=True,
)
SessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False, future=True)
Base = declarative_base()


class Vendor(Base):
    """Vendor profile attached to a user with the ``vendor`` role."""

    __tablename__ = "vendors"

    vendor_id = Column(Integer, primary_key=True, index=True)
    user_id = Column(
        Integer, ForeignKey("users.user_id"), unique=True, index=True, nullable=False
    )
    company_name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    is_approved = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)


class Order(Base):
    """A service order placed by a user with a vendor."""

    __tablename__ = "orders"

    order_id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, index=True, nullable=False)
    vendor_id = Column(Integer, index=True, nullable=False)
    service_id = Column(Integer, nullable=False)
    order_details = Column(Text, nullable=True)
    total_amount = Column(Float, nullable=False)
    status = Column(String(20), default="pending", nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)


def init_db(bind=None) -> None:
    """Create database tables if they do not exist."""
    from .models import user  # noqa: F401  registers the users table

    Base.metadata.create_all(bind=bind or engine)
