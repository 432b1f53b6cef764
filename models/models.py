"""
Database models for the application.
"""
import enum
from datetime import datetime, timezone
from sqlalchemy import (
    Column, Integer, String, DateTime, Boolean, Text, ForeignKey, Enum as SAEnum,
    UniqueConstraint, Index, JSON
)
from sqlalchemy.orm import relationship
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.sql import func
from db_config import Base

# JSONB on PostgreSQL, plain JSON elsewhere
JSONType = JSON().with_variant(JSONB(), "postgresql")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value):
    """SQLite hands back naive datetimes; treat them as UTC."""
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


# --- ENUM Types ---
class UserRoleEnum(enum.Enum):
    user = "user"
    admin = "admin"


class SubscriptionLevelEnum(enum.Enum):
    Free = "Free"
    Paid = "Paid"
    Tester = "Tester"


# --- Model Definitions ---

class User(Base):
    __tablename__ = "user"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    username = Column(String(50), nullable=False, unique=True, index=True)
    email = Column(String(255), nullable=True, unique=True)
    password_hash = Column(String(255), nullable=False)
    role = Column(SAEnum(UserRoleEnum, name="user_role_enum"), nullable=False, default=UserRoleEnum.user)
    is_active = Column(Boolean, nullable=False, default=True)

    subscription_level = Column(
        SAEnum(SubscriptionLevelEnum, name="subscription_level_enum"),
        nullable=False,
        default=SubscriptionLevelEnum.Free,
    )
    billing_period = Column(String(20), nullable=True)
    payment_status = Column(String(50), nullable=True)
    promo_code_used = Column(String(100), nullable=True)
    subscription_start = Column(DateTime(timezone=True), nullable=True)
    subscription_end = Column(DateTime(timezone=True), nullable=True)

    preferences = Column(JSONType, nullable=True)
    last_login_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now())

    sessions = relationship("UserSession", back_populates="user", cascade="all, delete-orphan", passive_deletes=True)
    subjects = relationship("Subject", back_populates="user", cascade="all, delete-orphan", passive_deletes=True)


class UserSession(Base):
    __tablename__ = "user_session"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("user.id", ondelete="CASCADE"), nullable=False, index=True)
    session_token = Column(String(512), nullable=False, unique=True, index=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now())
    expires_at = Column(DateTime(timezone=True), nullable=False)

    user = relationship("User", back_populates="sessions")


class Subject(Base):
    __tablename__ = "subject"
    __table_args__ = (UniqueConstraint("user_id", "slug", name="uq_subject_user_slug"),)

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("user.id", ondelete="CASCADE"), nullable=False, index=True)
    slug = Column(String(128), nullable=False)
    name = Column(String(255), nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now())

    user = relationship("User", back_populates="subjects")


class SubjectData(Base):
    __tablename__ = "subject_data"
    __table_args__ = (UniqueConstraint("user_id", "slug", name="uq_subject_data_user_slug"),)

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("user.id", ondelete="CASCADE"), nullable=False, index=True)
    slug = Column(String(128), nullable=False)
    data = Column(JSONType, nullable=False)
    shared_by_username = Column(String(50), nullable=True)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, server_default=func.now())


class SharedCourse(Base):
    __tablename__ = "shared_course"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    share_id = Column(String(64), nullable=False, unique=True, index=True)
    user_id = Column(Integer, ForeignKey("user.id", ondelete="CASCADE"), nullable=False, index=True)
    course_slug = Column(String(128), nullable=False)
    course_name = Column(String(255), nullable=False)
    course_data = Column(JSONType, nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now())


class PromoCode(Base):
    __tablename__ = "promo_code"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    code = Column(String(100), nullable=False, unique=True, index=True)
    description = Column(Text, nullable=True)
    subscription_level = Column(
        SAEnum(SubscriptionLevelEnum, name="subscription_level_enum"),
        nullable=False,
        default=SubscriptionLevelEnum.Tester,
    )
    expires_at = Column(DateTime(timezone=True), nullable=True)
    validity_days = Column(Integer, nullable=True)
    max_uses = Column(Integer, nullable=True)
    current_uses = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now())


class PromoCodeRedemption(Base):
    __tablename__ = "promo_code_redemption"
    __table_args__ = (UniqueConstraint("promo_code_id", "user_id", name="uq_redemption_code_user"),)

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    promo_code_id = Column(Integer, ForeignKey("promo_code.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("user.id", ondelete="CASCADE"), nullable=False, index=True)
    redeemed_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now())


class UsageStats(Base):
    __tablename__ = "usage_stats"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("user.id", ondelete="CASCADE"), nullable=False, unique=True)
    courses_created = Column(Integer, nullable=False, default=0)
    lessons_generated = Column(Integer, nullable=False, default=0)
    api_calls = Column(Integer, nullable=False, default=0)
    last_reset_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now())


class ExamSnipeHistory(Base):
    __tablename__ = "exam_snipe_history"
    __table_args__ = (
        UniqueConstraint("user_id", "slug", name="uq_exam_snipe_user_slug"),
        Index("ix_exam_snipe_user_subject", "user_id", "subject_slug"),
    )

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("user.id", ondelete="CASCADE"), nullable=False, index=True)
    slug = Column(String(128), nullable=False)
    course_name = Column(String(255), nullable=False)
    subject_slug = Column(String(128), nullable=True)
    file_names = Column(JSONType, nullable=False, default=list)
    results = Column(JSONType, nullable=False, default=dict)
    created_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, server_default=func.now())


class Feedback(Base):
    __tablename__ = "feedback"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("user.id", ondelete="CASCADE"), nullable=True, index=True)
    message = Column(Text, nullable=False)
    page = Column(String(255), nullable=False, default="unknown")
    done = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now())


# Tables holding per-user rows, in deletion order
USER_OWNED_MODELS = (
    UserSession, PromoCodeRedemption, UsageStats, ExamSnipeHistory,
    SharedCourse, SubjectData, Subject, Feedback,
)

__all__ = [
    "User", "UserSession", "Subject", "SubjectData", "SharedCourse",
    "PromoCode", "PromoCodeRedemption", "UsageStats", "ExamSnipeHistory", "Feedback",
    "UserRoleEnum", "SubscriptionLevelEnum", "USER_OWNED_MODELS", "utcnow", "as_utc",
]
