import logging
from datetime import date, datetime, timezone
from typing import Any, Iterable, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from .exceptions import StorageError
from .models import DailyMetrics, GarminRawData, GarminSyncLog, UserProfile

logger = logging.getLogger("RawDataStore")


class RawDataStore:
    """
    Persistence for raw Garmin payloads, user profiles and the sync audit log.
    Every write commits on its own so an interrupted sync keeps what it stored.
    Database failures surface as StorageError.
    """
    def __init__(self, session: Session):
        self.session = session

    def _commit(self, action: str):
        try:
            self.session.commit()
        except SQLAlchemyError as e:
            self.session.rollback()
            logger.error(f"Storage failure while {action}: {e}")
            raise StorageError(f"Storage failure while {action}: {e}") from e

    def _query(self, action: str, fn):
        try:
            return fn()
        except SQLAlchemyError as e:
            self.session.rollback()
            logger.error(f"Storage failure while {action}: {e}")
            raise StorageError(f"Storage failure while {action}: {e}") from e

    # --- Raw Records ---

    def insert(self, user_id: str, data_date: date, data_type: str, payload: Any) -> GarminRawData:
        record = GarminRawData(
            user_id=user_id,
            data_date=data_date,
            data_type=data_type,
            raw_json=payload,
            processed=False,
        )
        self.session.add(record)
        self._commit(f"inserting {data_type} for {data_date}")
        return record

    def delete_by_user(self, user_id: str) -> int:
        deleted = self._query(
            "deleting user records",
            lambda: self.session.query(GarminRawData)
            .filter(GarminRawData.user_id == user_id)
            .delete(synchronize_session=False),
        )
        self._commit("deleting user records")
        logger.info(f"Deleted {deleted} raw records for user {user_id}")
        return deleted

    def delete_for_date_and_type(self, user_id: str, data_date: date, data_type: str) -> int:
        deleted = self._query(
            "replacing a day's records",
            lambda: self.session.query(GarminRawData)
            .filter(
                GarminRawData.user_id == user_id,
                GarminRawData.data_date == data_date,
                GarminRawData.data_type == data_type,
            )
            .delete(synchronize_session=False),
        )
        self._commit("replacing a day's records")
        return deleted

    def delete_ids(self, record_ids: Iterable[str]) -> int:
        ids = list(record_ids)
        if not ids:
            return 0
        deleted = self._query(
            "deleting records",
            lambda: self.session.query(GarminRawData)
            .filter(GarminRawData.id.in_(ids))
            .delete(synchronize_session=False),
        )
        self._commit("deleting records")
        return deleted

    def select_by_user_and_date(self, user_id: str, data_date: date) -> List[GarminRawData]:
        return self._query(
            "loading a day's records",
            lambda: self.session.query(GarminRawData)
            .filter(GarminRawData.user_id == user_id, GarminRawData.data_date == data_date)
            .order_by(GarminRawData.created_at)
            .all(),
        )

    def exists_for_date(self, user_id: str, data_date: date) -> bool:
        first = self._query(
            "checking existing records",
            lambda: self.session.query(GarminRawData.id)
            .filter(GarminRawData.user_id == user_id, GarminRawData.data_date == data_date)
            .first(),
        )
        return first is not None

    def distinct_dates_desc(self, user_id: str) -> List[date]:
        rows = self._query(
            "listing available dates",
            lambda: self.session.query(GarminRawData.data_date)
            .filter(GarminRawData.user_id == user_id)
            .distinct()
            .order_by(GarminRawData.data_date.desc())
            .all(),
        )
        return [row[0] for row in rows]

    def recent_records(self, user_id: str, limit: int = 100) -> List[GarminRawData]:
        return self._query(
            "loading recent records",
            lambda: self.session.query(GarminRawData)
            .filter(GarminRawData.user_id == user_id)
            .order_by(GarminRawData.created_at.desc())
            .limit(limit)
            .all(),
        )

    def records_for_user(self, user_id: str) -> List[GarminRawData]:
        return self._query(
            "loading user records",
            lambda: self.session.query(GarminRawData).filter(GarminRawData.user_id == user_id).all(),
        )

    # --- Profiles ---

    def get_profile(self, user_id: str) -> Optional[UserProfile]:
        return self._query("loading profile", lambda: self.session.get(UserProfile, user_id))

    def update_profile(self, user_id: str, **fields) -> UserProfile:
        """Updates (or creates) the user's profile row."""
        profile = self.get_profile(user_id)
        if profile is None:
            profile = UserProfile(id=user_id)
            self.session.add(profile)
        for key, value in fields.items():
            setattr(profile, key, value)
        profile.updated_at = datetime.now(timezone.utc)
        self._commit("updating profile")
        return profile

    def connected_profiles(self) -> List[UserProfile]:
        return self._query(
            "listing connected users",
            lambda: self.session.query(UserProfile).filter(UserProfile.garmin_connected.is_(True)).all(),
        )

    # --- Journal ---

    def journal_entry(self, user_id: str, metric_date: date) -> Optional[DailyMetrics]:
        return self._query(
            "loading journal entry",
            lambda: self.session.query(DailyMetrics)
            .filter(DailyMetrics.user_id == user_id, DailyMetrics.metric_date == metric_date)
            .first(),
        )

    # --- Audit Log ---

    def write_log(
        self,
        user_id: str,
        sync_type: str,
        status: str,
        data_points_synced: Optional[int] = None,
        error_message: Optional[str] = None,
        sync_duration_ms: Optional[int] = None,
    ) -> GarminSyncLog:
        entry = GarminSyncLog(
            user_id=user_id,
            sync_type=sync_type,
            status=status,
            data_points_synced=data_points_synced,
            error_message=error_message,
            sync_duration_ms=sync_duration_ms,
        )
        self.session.add(entry)
        self._commit("writing sync log")
        return entry

    def sync_logs(self, user_id: str) -> List[GarminSyncLog]:
        return self._query(
            "loading sync logs",
            lambda: self.session.query(GarminSyncLog)
            .filter(GarminSyncLog.user_id == user_id)
            .order_by(GarminSyncLog.sync_timestamp)
            .all(),
        )
