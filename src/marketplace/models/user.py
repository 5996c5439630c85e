from sqlalchemy import Column, Integer, String

from ..database import Base

ROLES = ("user", "vendor", "admin")


class User(Base):
    """SQLAlchemy model for marketplace accounts."""

    __tablename__ = "users"

    user_id = Column(Integer, primary_key=True, index=True)
    username = Column(String(100), unique=True, index=True, nullable=False)
    email = Column(String(255), unique=True, index=True, nullable=False)
    password_hash = Column(String(255), nullable=False)
    role = Column(String(20), default="user", nullable=False)
