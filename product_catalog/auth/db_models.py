"""
SQLAlchemy ORM models for authentication tables.

These are the database-layer models that map to actual tables.
Separate from product_catalog/auth/models.py (dataclasses) which are domain models.
"""
from uuid import uuid4

from sqlalchemy import (
    Column, String, Boolean, DateTime, ForeignKey, Text, Index, Uuid, func
)
from sqlalchemy.orm import relationship

from product_catalog.auth.models import ADMIN_ROLE, ROLE_MAX_LENGTH
from product_catalog.core.database import Base


class UserORM(Base):
    """User table - core user identity."""
    __tablename__ = 'users'

    id = Column(Uuid, primary_key=True, default=uuid4)
    email = Column(String(320), nullable=False)
    name = Column(String(256), nullable=False)
    picture_url = Column(String(2048), nullable=True)
    is_admin = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), nullable=False)
    updated_at = Column(DateTime(timezone=True), nullable=True)

    # Relationships
    sessions = relationship("UserSessionORM", back_populates="user", cascade="all, delete-orphan", passive_deletes=True)

    __table_args__ = (
        # One user per email regardless of case
        Index('uq_users_email_lower', func.lower(email), unique=True),
    )


class UserSessionORM(Base):
    """Web sessions. The primary key is the cookie value."""
    __tablename__ = 'user_sessions'

    id = Column(String(64), primary_key=True)
    user_id = Column(Uuid, ForeignKey('users.id', ondelete='CASCADE'), nullable=False)
    expires_at = Column(DateTime(timezone=True), nullable=False)
    ip_address = Column(String(64), nullable=True)
    user_agent = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False)

    # Relationships
    user = relationship("UserORM", back_populates="sessions")

    __table_args__ = (
        Index('idx_session_user_id', 'user_id'),
        Index('idx_session_expires', 'expires_at'),
    )


class CredentialAccountORM(Base):
    """Local username/password accounts for bearer-token login."""
    __tablename__ = 'credential_accounts'

    id = Column(Uuid, primary_key=True, default=uuid4)
    username = Column(String(100), unique=True, nullable=False)
    password_hash = Column(String(128), nullable=False)
    role = Column(String(ROLE_MAX_LENGTH), nullable=False, default=ADMIN_ROLE)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), nullable=False)
    updated_at = Column(DateTime(timezone=True), nullable=True)
