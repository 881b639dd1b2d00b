"""SQLAlchemy ORM models for trips, members, itineraries and explore sessions."""

from datetime import datetime
from typing import Any

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Text,
    UniqueConstraint,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship
from sqlalchemy.sql import func

# JSONB on PostgreSQL, plain JSON elsewhere (SQLite in tests)
JsonDocument = JSON().with_variant(JSONB(), "postgresql")


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""

    pass


class Profile(Base):
    """Account profile - carries the account-level upgrade flag."""

    __tablename__ = "profile"

    user_id: Mapped[str] = mapped_column(Text, primary_key=True)
    is_upgraded: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )


class Trip(Base):
    """Trip table - owner plus trip-level upgrade flag."""

    __tablename__ = "trip"

    trip_id: Mapped[str] = mapped_column(Text, primary_key=True)
    owner_id: Mapped[str] = mapped_column(Text, nullable=False)
    is_upgraded: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    # Relationships
    members: Mapped[list["TripMember"]] = relationship(
        "TripMember", back_populates="trip", cascade="all, delete-orphan"
    )


class TripMember(Base):
    """Trip membership with per-member usage counters."""

    __tablename__ = "trip_member"
    __table_args__ = (
        UniqueConstraint("trip_id", "user_id", name="uq_trip_member"),
        Index("idx_trip_member_user", "user_id"),
    )

    member_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    trip_id: Mapped[str] = mapped_column(
        Text, ForeignKey("trip.trip_id", ondelete="CASCADE"), nullable=False
    )
    user_id: Mapped[str] = mapped_column(Text, nullable=False)
    role: Mapped[str] = mapped_column(Text, nullable=False, default="viewer")
    swipe_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    change_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    search_add_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    # Relationships
    trip: Mapped["Trip"] = relationship("Trip", back_populates="members")


class SmartItinerary(Base):
    """Itinerary document per trip (and optional segment)."""

    __tablename__ = "smart_itinerary"
    __table_args__ = (
        UniqueConstraint("trip_id", "segment_id", name="uq_itinerary_trip_segment"),
    )

    itinerary_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    trip_id: Mapped[str] = mapped_column(
        Text, ForeignKey("trip.trip_id", ondelete="CASCADE"), nullable=False
    )
    segment_id: Mapped[str | None] = mapped_column(Text, nullable=True)
    content: Mapped[dict[str, Any]] = mapped_column(JsonDocument, nullable=False)
    revision: Mapped[int] = mapped_column(Integer, default=1, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False
    )


class ExploreSessionRow(Base):
    """Explore swipe session per trip, member and optional segment."""

    __tablename__ = "explore_session"
    __table_args__ = (
        UniqueConstraint("trip_id", "user_id", "segment_id", name="uq_explore_session"),
    )

    session_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    trip_id: Mapped[str] = mapped_column(
        Text, ForeignKey("trip.trip_id", ondelete="CASCADE"), nullable=False
    )
    user_id: Mapped[str] = mapped_column(Text, nullable=False)
    segment_id: Mapped[str | None] = mapped_column(Text, nullable=True)
    liked_place_ids: Mapped[list[str]] = mapped_column(JsonDocument, nullable=False, default=list)
    discarded_place_ids: Mapped[list[str]] = mapped_column(
        JsonDocument, nullable=False, default=list
    )
    swipe_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    # Ordered [{"place_id", "direction"}] of swipes still in effect
    history: Mapped[list[dict[str, str]]] = mapped_column(
        JsonDocument, nullable=False, default=list
    )
    last_swipe_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
