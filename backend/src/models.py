import uuid
from datetime import date, datetime, timezone
from typing import Optional

from sqlalchemy import JSON, Boolean, Date, DateTime, Index, Integer, String, Text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _new_id() -> str:
    return str(uuid.uuid4())


class Base(DeclarativeBase):
    pass

# --- Garmin Ingestion ---

class GarminRawData(Base):
    __tablename__ = "garmin_raw_data"
    __table_args__ = (
        Index("ix_garmin_raw_data_user_date", "user_id", "data_date"),
    )

    id: Mapped[str] = mapped_column(String, primary_key=True, default=_new_id)
    user_id: Mapped[str] = mapped_column(String, index=True)
    data_date: Mapped[date] = mapped_column(Date)
    data_type: Mapped[str] = mapped_column(String)  # hrv, sleep, body_battery, steps, stress
    raw_json: Mapped[dict] = mapped_column(JSON)
    processed: Mapped[bool] = mapped_column(Boolean, default=False)
    processing_errors: Mapped[Optional[list]] = mapped_column(JSON, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)

class GarminSyncLog(Base):
    __tablename__ = "garmin_sync_logs"

    id: Mapped[str] = mapped_column(String, primary_key=True, default=_new_id)
    user_id: Mapped[str] = mapped_column(String, index=True)
    sync_type: Mapped[str] = mapped_column(String)  # bulk, manual, auto_sync
    status: Mapped[str] = mapped_column(String)  # success, partial_success, error
    data_points_synced: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    error_message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    sync_duration_ms: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    sync_timestamp: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)

# --- Users ---

class UserProfile(Base):
    __tablename__ = "user_profiles"

    id: Mapped[str] = mapped_column(String, primary_key=True)
    garmin_connected: Mapped[bool] = mapped_column(Boolean, default=False)
    garmin_last_sync: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    # JSON blob {"email", "password", "userId"}; the column name predates real encryption
    garmin_credentials_encrypted: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    updated_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True, onupdate=_utcnow)

# --- Journal (owned by the journal form, read-only here) ---

class DailyMetrics(Base):
    __tablename__ = "daily_metrics"
    __table_args__ = (
        Index("ix_daily_metrics_user_date", "user_id", "metric_date", unique=True),
    )

    id: Mapped[str] = mapped_column(String, primary_key=True, default=_new_id)
    user_id: Mapped[str] = mapped_column(String)
    metric_date: Mapped[date] = mapped_column(Date)
    hrv_reflects_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)

    # Manually entered lifestyle fields
    stress_level: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)  # 1-10
    tag_bewertung: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)  # day rating 1-10
    werte_zufriedenheit: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)  # 1-10
    sport_heute: Mapped[Optional[bool]] = mapped_column(Boolean, nullable=True)
    meditation_heute: Mapped[Optional[bool]] = mapped_column(Boolean, nullable=True)
    alkohol_konsum: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    schlafqualitaet: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    notizen: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
