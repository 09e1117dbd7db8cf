"""
SQLAlchemy models for the broker's persisted state.

Principals (credit balance + soft block flags), cached provider results,
protection records, the append-only request log, redeem codes and the
single-row app settings that carry the live cost table.
Timestamps are Unix seconds.
"""

from __future__ import annotations

import time
from typing import Any

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    Column,
    ForeignKey,
    Integer,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import declarative_base

Base = declarative_base()


def now_ts() -> int:
    return int(time.time())


class Principal(Base):
    """Registered user. Never deleted here; blocking is done with soft flags."""

    __tablename__ = "principals"
    __table_args__ = (CheckConstraint("credits >= 0", name="ck_principals_credits_non_negative"),)

    id = Column(String(128), primary_key=True)
    email = Column(String(320), nullable=True, unique=True)
    username = Column(String(128), nullable=True)
    credits = Column(Integer, nullable=False, default=0)
    is_blocked = Column(Boolean, nullable=False, default=False)
    is_ip_blocked = Column(Boolean, nullable=False, default=False)
    last_ip = Column(String(64), nullable=True, index=True)
    credits_expire_at = Column(Integer, nullable=True)  # Unix; null = never expire
    terms_accepted = Column(Boolean, nullable=False, default=False)
    privacy_accepted = Column(Boolean, nullable=False, default=False)
    created_at = Column(Integer, nullable=False, default=now_ts)
    updated_at = Column(Integer, nullable=False, default=now_ts, onupdate=now_ts)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "email": self.email,
            "username": self.username or self.email or "Unknown",
            "credits": self.credits,
            "is_blocked": self.is_blocked,
            "is_ip_blocked": self.is_ip_blocked,
            "last_ip": self.last_ip,
            "credits_expire_at": self.credits_expire_at,
            "terms_accepted": self.terms_accepted,
            "privacy_accepted": self.privacy_accepted,
            "created_at": self.created_at,
        }


class CacheEntry(Base):
    """Last successful provider payload for (service, normalized query)."""

    __tablename__ = "cache_entries"
    __table_args__ = (UniqueConstraint("service", "query", name="uq_cache_entries_service_query"),)

    id = Column(Integer, primary_key=True, autoincrement=True)
    service = Column(String(32), nullable=False)
    query = Column(String(128), nullable=False)
    payload = Column(JSON, nullable=False)
    created_at = Column(Integer, nullable=False, default=now_ts, index=True)


class ProtectionRecord(Base):
    """A normalized query every service refuses to process, for any principal."""

    __tablename__ = "protected_numbers"

    id = Column(Integer, primary_key=True, autoincrement=True)
    number = Column(String(128), unique=True, nullable=False, index=True)
    reason = Column(String(512), nullable=True)
    created_at = Column(Integer, nullable=False, default=now_ts)

    def to_dict(self) -> dict[str, Any]:
        return {"number": self.number, "reason": self.reason, "created_at": self.created_at}


class AuditEntry(Base):
    """
    One row per attempted lookup (append-only). status is SUCCESS,
    FAILED_NO_CREDITS, DENIED, NOT_FOUND, PROVIDER_ERROR or PROVIDER_EXHAUSTED.
    """

    __tablename__ = "request_logs"

    id = Column(Integer, primary_key=True, autoincrement=True)
    principal_id = Column(String(128), ForeignKey("principals.id"), nullable=False, index=True)
    service = Column(String(32), nullable=False)
    query = Column(String(128), nullable=False)
    status = Column(String(64), nullable=False, index=True)
    result = Column(JSON, nullable=True)
    created_at = Column(Integer, nullable=False, default=now_ts, index=True)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "service": self.service,
            "query": self.query,
            "status": self.status,
            "result": self.result,
            "created_at": self.created_at,
        }


class RedeemCode(Base):
    """Single-use token granting a fixed number of credits."""

    __tablename__ = "redeem_codes"

    id = Column(Integer, primary_key=True, autoincrement=True)
    code = Column(String(64), unique=True, nullable=False, index=True)
    credits = Column(Integer, nullable=False)
    is_used = Column(Boolean, nullable=False, default=False)
    used_by = Column(String(128), ForeignKey("principals.id"), nullable=True)
    used_at = Column(Integer, nullable=True)
    created_at = Column(Integer, nullable=False, default=now_ts)

    def to_dict(self) -> dict[str, Any]:
        return {
            "code": self.code,
            "credits": self.credits,
            "is_used": self.is_used,
            "used_by": self.used_by,
            "used_at": self.used_at,
            "created_at": self.created_at,
        }


class AppSettings(Base):
    """Single row of operator-editable settings (cost table, signup grant)."""

    __tablename__ = "app_settings"

    id = Column(Integer, primary_key=True, autoincrement=True)
    service_costs = Column(JSON, nullable=False)
    free_credits_on_signup = Column(Integer, nullable=False, default=10)
    updated_at = Column(Integer, nullable=False, default=now_ts, onupdate=now_ts)

    def to_dict(self) -> dict[str, Any]:
        return {
            "service_costs": dict(self.service_costs or {}),
            "free_credits_on_signup": self.free_credits_on_signup,
            "updated_at": self.updated_at,
        }

