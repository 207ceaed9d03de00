# api_auth/app/db/models.py

from sqlalchemy import Column, DateTime, String
from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    """Base for all ORM models."""
    pass


class UserRecord(Base):
    __tablename__ = "users"

    id = Column(String(36), primary_key=True)
    email = Column(String, nullable=False, index=True)
    name = Column(String)
    picture_url = Column("picture", String)

    # Google 'sub'; the only key used to match a returning user
    external_id = Column(String, unique=True, nullable=False)

    created_at = Column(DateTime(timezone=True), nullable=False)
    updated_at = Column(DateTime(timezone=True), nullable=False)
