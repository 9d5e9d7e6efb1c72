import json
import time
import asyncio
import logging
from contextlib import asynccontextmanager
from datetime import date, datetime, timedelta, timezone
from typing import Callable, Dict, List, NamedTuple, Optional

import pandas as pd
from sqlalchemy.orm import Session

from .analysis.timing import apply_timing
from .config import ConfigManager, config_manager
from .exceptions import AuthenticationError, ConfigurationError, StorageError, SyncInProgressError
from .garmin_client import GarminConnectClient
from .ingestion import METRIC_TYPES, GarminNormalizer, is_meaningful
from .models import UserProfile
from .schemas import (
    AutoSyncResult,
    ConnectionTestResult,
    DataQualityReport,
    NormalizedDailyMetrics,
    SyncResult,
)
from .storage import RawDataStore

logger = logging.getLogger("SyncOrchestrator")

QUALITY_SAMPLE_SIZE = 100
QUALITY_PREVIEW_COUNT = 5
PREVIEW_CHARS = 100


class GarminCredentials(NamedTuple):
    email: str
    password: str
    account_id: str


class SyncTally:
    """Running counts for one sync run."""
    def __init__(self):
        self.fetches = 0
        self.synced = 0
        self.empty = 0
        self.errors: List[str] = []

    def status(self) -> str:
        if not self.errors:
            return "success"
        return "partial_success" if self.synced > 0 else "error"


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    # SQLite drops tzinfo on the way back
    if value is None:
        return None
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


def _parse_blob(raw: Optional[str]) -> Optional[dict]:
    """Returns the stored credential blob, or None when it is absent or not a JSON object."""
    if not raw:
        return None
    try:
        blob = json.loads(raw)
    except (TypeError, ValueError):
        return None
    return blob if isinstance(blob, dict) else None


class SyncOrchestrator:
    """
    Drives Garmin fetches into the raw data store.

    Fetches run strictly one after another with a fixed delay between them.
    Per-date/per-metric failures are collected into the result; credential
    problems and storage outages end the run.
    """
    def __init__(
        self,
        session_factory: Callable[[], Session],
        client_factory: Optional[Callable[[str], GarminConnectClient]] = None,
        config: Optional[ConfigManager] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.session_factory = session_factory
        self.config = config or config_manager
        self.client_factory = client_factory or self._default_client
        self.clock = clock or (lambda: datetime.now(timezone.utc))
        self.timer = time.monotonic
        self.normalizer = GarminNormalizer()
        self._locks: Dict[str, asyncio.Lock] = {}

    def _default_client(self, account_id: str) -> GarminConnectClient:
        return GarminConnectClient(
            account_id,
            timeout=self.config.get("request_timeout_seconds", 30),
            max_attempts=self.config.get("fetch_max_attempts", 1),
            backoff_seconds=self.config.get("retry_backoff_seconds", 1.0),
        )

    # --- Locking ---

    def is_syncing(self, user_id: str) -> bool:
        lock = self._locks.get(user_id)
        return lock is not None and lock.locked()

    @asynccontextmanager
    async def _user_lock(self, user_id: str):
        if self.is_syncing(user_id):
            raise SyncInProgressError(f"A sync for user {user_id} is already running")
        lock = self._locks.setdefault(user_id, asyncio.Lock())
        async with lock:
            yield

    # --- Credentials ---

    def _fallback_account_id(self) -> str:
        return str(self.config.get("fallback_account_id", "124462920"))

    def _resolve_credentials(
        self,
        store: RawDataStore,
        user_id: str,
        email: Optional[str] = None,
        password: Optional[str] = None,
    ) -> GarminCredentials:
        """Arguments first, then the user's stored blob, then the service-level secrets."""
        profile = store.get_profile(user_id)
        raw_blob = profile.garmin_credentials_encrypted if profile else None
        blob = _parse_blob(raw_blob)
        account_id = str((blob or {}).get("userId") or self._fallback_account_id())

        if email and password:
            return GarminCredentials(email, password, account_id)

        if raw_blob:
            if blob is None or not blob.get("email") or not blob.get("password"):
                raise AuthenticationError("Stored Garmin credentials are malformed")
            return GarminCredentials(blob["email"], blob["password"], account_id)

        service = self.config.service_credentials()
        if service.get("email") and service.get("password"):
            return GarminCredentials(service["email"], service["password"], account_id)

        raise AuthenticationError("No Garmin credentials configured")

    async def _authenticated_client(self, credentials: GarminCredentials) -> GarminConnectClient:
        client = self.client_factory(credentials.account_id)
        if not await client.authenticate(credentials.email, credentials.password):
            client.close()
            raise AuthenticationError("Garmin authentication failed")
        return client

    # --- Fetch Units ---

    async def _fetch_day(
        self, client, store, user_id: str, day: date, tally: SyncTally, replace: bool = False
    ):
        """
        Fetches every metric type for one date into the store. Failures are
        recorded on the tally and never stop the loop. With *replace*, existing
        records of a type are deleted once new data for it has arrived.
        """
        delay = float(self.config.get("request_delay_seconds", 0.15))
        for metric_type in METRIC_TYPES:
            if tally.fetches and delay > 0:
                await asyncio.sleep(delay)
            tally.fetches += 1

            try:
                result = await client.fetch_data(day, metric_type)
                if not result.success:
                    tally.errors.append(f"{day.isoformat()}/{metric_type}: {result.error}")
                elif result.is_empty or result.data is None:
                    tally.empty += 1
                else:
                    if replace:
                        store.delete_for_date_and_type(user_id, day, metric_type)
                    store.insert(user_id, day, metric_type, result.data)
                    tally.synced += 1
            except StorageError:
                raise
            except Exception as e:
                logger.warning(f"Sync unit {day}/{metric_type} failed for user {user_id}: {e}")
                tally.errors.append(f"{day.isoformat()}/{metric_type}: {e}")

    def _finish(
        self, store, user_id: str, sync_type: str, tally: SyncTally, date_range: str, started: float
    ) -> SyncResult:
        store.update_profile(user_id, garmin_last_sync=self.clock(), garmin_connected=True)
        status = tally.status()
        message = f"Successfully synced {tally.synced} data points"
        if tally.errors:
            message += f" with {len(tally.errors)} errors"
        store.write_log(
            user_id, sync_type, status, tally.synced,
            "; ".join(tally.errors) if tally.errors else None,
            self._elapsed_ms(started),
        )
        logger.info(f"{sync_type.capitalize()} sync for user {user_id} finished: {message}")

        return SyncResult(
            success=status != "error",
            data_points_synced=tally.synced,
            empty_responses=tally.empty,
            date_range=date_range,
            errors=tally.errors,
            message=message,
        )

    def _elapsed_ms(self, started: float) -> int:
        return int((self.timer() - started) * 1000)

    # --- Bulk Sync ---

    async def bulk_sync(
        self,
        user_id: str,
        weeks_past: Optional[int] = None,
        email: Optional[str] = None,
        password: Optional[str] = None,
        deadline_seconds: Optional[float] = None,
    ) -> SyncResult:
        """
        Replaces all of the user's raw data with a fresh fetch of the last
        *weeks_past* weeks. A non-empty errors list means the sync is
        incomplete, not that it failed.
        """
        async with self._user_lock(user_id):
            return await self._bulk_sync(user_id, weeks_past, email, password, deadline_seconds)

    async def _bulk_sync(self, user_id, weeks_past, email, password, deadline_seconds) -> SyncResult:
        if weeks_past is None:
            weeks_past = int(self.config.get("default_weeks_past", 4))
        if deadline_seconds is None:
            deadline_seconds = self.config.get("sync_deadline_seconds")

        started = self.timer()
        today = self.clock().date()
        start_date = today - timedelta(days=weeks_past * 7)
        dates = [ts.date() for ts in pd.date_range(start_date, today, freq="D")]
        date_range = f"{start_date.isoformat()} to {today.isoformat()}"
        logger.info(f"Starting bulk sync for user {user_id}, {date_range}")

        db = self.session_factory()
        try:
            store = RawDataStore(db)
            try:
                credentials = self._resolve_credentials(store, user_id, email, password)
                client = await self._authenticated_client(credentials)
            except AuthenticationError as e:
                logger.error(f"Bulk sync for user {user_id} aborted: {e}")
                store.write_log(user_id, "bulk", "error", 0, str(e), self._elapsed_ms(started))
                return SyncResult(success=False, date_range=date_range, errors=[str(e)], message=str(e))

            tally = SyncTally()
            try:
                store.delete_by_user(user_id)
                for day in dates:
                    if deadline_seconds is not None and self.timer() - started > deadline_seconds:
                        tally.errors.append(f"sync deadline exceeded at {day.isoformat()}")
                        logger.warning(f"Bulk sync for user {user_id} stopped at {day}: deadline exceeded")
                        break
                    await self._fetch_day(client, store, user_id, day, tally)
            except StorageError:
                logger.critical(f"Storage unavailable during bulk sync for user {user_id}; aborting")
                raise
            finally:
                client.close()

            return self._finish(store, user_id, "bulk", tally, date_range, started)
        finally:
            db.close()

    # --- Single Day ---

    async def sync_date(
        self,
        user_id: str,
        day: date,
        email: Optional[str] = None,
        password: Optional[str] = None,
    ) -> SyncResult:
        """Re-fetches one date. Only the metric types that returned data are replaced."""
        async with self._user_lock(user_id):
            started = self.timer()
            date_range = f"{day.isoformat()} to {day.isoformat()}"
            db = self.session_factory()
            try:
                store = RawDataStore(db)
                try:
                    credentials = self._resolve_credentials(store, user_id, email, password)
                    client = await self._authenticated_client(credentials)
                except AuthenticationError as e:
                    logger.error(f"Manual sync for user {user_id} on {day} aborted: {e}")
                    store.write_log(user_id, "manual", "error", 0, str(e), self._elapsed_ms(started))
                    return SyncResult(success=False, date_range=date_range, errors=[str(e)], message=str(e))

                tally = SyncTally()
                try:
                    await self._fetch_day(client, store, user_id, day, tally, replace=True)
                finally:
                    client.close()

                return self._finish(store, user_id, "manual", tally, date_range, started)
            finally:
                db.close()

    # --- Auto Sync ---

    async def auto_sync(self, now: Optional[datetime] = None) -> AutoSyncResult:
        """
        Tops up yesterday and today for every connected user whose last sync is
        older than the threshold. Dates that already have records are skipped
        without fetching. One user's failure never stops the batch.
        """
        now = _as_utc(now) or self.clock()
        try:
            service = self._service_credentials()
        except ConfigurationError as e:
            logger.error(f"Auto-sync cannot run: {e}")
            return AutoSyncResult(success=False, errors=1, error_details=[str(e)], message=str(e))

        threshold = now - timedelta(hours=float(self.config.get("auto_sync_threshold_hours", 2)))
        dates = [now.date() - timedelta(days=1), now.date()]

        synced_users = 0
        error_details: List[str] = []
        db = self.session_factory()
        try:
            store = RawDataStore(db)
            due = [
                p for p in store.connected_profiles()
                if p.garmin_last_sync is None or _as_utc(p.garmin_last_sync) < threshold
            ]
            logger.info(f"Auto-sync: {len(due)} user(s) due")

            for profile in due:
                user_id = profile.id
                if self.is_syncing(user_id):
                    logger.info(f"Auto-sync: skipping user {user_id}, a sync is already running")
                    continue
                try:
                    async with self._user_lock(user_id):
                        count = await self._auto_sync_user(store, profile, dates, service, now)
                    synced_users += 1
                    logger.info(f"Auto-sync: user {user_id} synced {count} data points")
                except StorageError:
                    raise
                except Exception as e:
                    logger.error(f"Auto-sync failed for user {user_id}: {e}")
                    error_details.append(f"User {user_id}: {e}")
                    store.write_log(user_id, "auto_sync", "error", 0, str(e))
        finally:
            db.close()

        self.config.update_config(last_auto_sync=now.isoformat())
        message = f"Auto-sync completed: {synced_users} users synced, {len(error_details)} errors"
        return AutoSyncResult(
            success=True,
            synced_users=synced_users,
            errors=len(error_details),
            error_details=error_details,
            message=message,
        )

    def _service_credentials(self) -> Dict[str, str]:
        service = self.config.service_credentials()
        if not service.get("email") or not service.get("password"):
            raise ConfigurationError("GARMIN_EMAIL and GARMIN_PASSWORD must be set for auto-sync")
        return service

    async def _auto_sync_user(self, store, profile: UserProfile, dates, service, now) -> int:
        user_id = profile.id
        blob = _parse_blob(profile.garmin_credentials_encrypted) or {}
        credentials = GarminCredentials(
            service["email"], service["password"],
            str(blob.get("userId") or self._fallback_account_id()),
        )

        client = None
        tally = SyncTally()
        try:
            for day in dates:
                if store.exists_for_date(user_id, day):
                    logger.debug(f"Auto-sync: user {user_id} already has data for {day}")
                    continue
                if client is None:
                    client = await self._authenticated_client(credentials)
                await self._fetch_day(client, store, user_id, day, tally)
        finally:
            if client is not None:
                client.close()

        store.update_profile(user_id, garmin_last_sync=now)
        store.write_log(
            user_id, "auto_sync", tally.status(), tally.synced,
            "; ".join(tally.errors) if tally.errors else None,
        )
        return tally.synced

    # --- Connection & Credentials ---

    def save_credentials(self, user_id: str, email: str, password: str, account_id: Optional[str] = None):
        blob = {"email": email, "password": password}
        if account_id:
            blob["userId"] = account_id
        db = self.session_factory()
        try:
            RawDataStore(db).update_profile(user_id, garmin_credentials_encrypted=json.dumps(blob))
            logger.info(f"Stored Garmin credentials for user {user_id}")
        finally:
            db.close()

    def test_connection(self, user_id: str) -> ConnectionTestResult:
        """Checks that the stored credentials are plausible. Does not contact Garmin."""
        db = self.session_factory()
        try:
            store = RawDataStore(db)
            profile = store.get_profile(user_id)
            if profile is None or not profile.garmin_credentials_encrypted:
                return ConnectionTestResult(success=False, message="No Garmin credentials stored")

            blob = _parse_blob(profile.garmin_credentials_encrypted)
            if blob is None:
                return ConnectionTestResult(success=False, message="Stored Garmin credentials are malformed")

            email = blob.get("email")
            password = blob.get("password")
            if not isinstance(email, str) or "@" not in email or not password:
                return ConnectionTestResult(success=False, message="Invalid email or password format")

            store.update_profile(user_id, garmin_connected=True)
            return ConnectionTestResult(success=True, message="Garmin credentials validated")
        finally:
            db.close()

    # --- Reads & Maintenance ---

    def get_available_data_dates(self, user_id: str) -> List[date]:
        db = self.session_factory()
        try:
            return RawDataStore(db).distinct_dates_desc(user_id)
        finally:
            db.close()

    def get_data_for_date(self, user_id: str, day: date) -> Optional[NormalizedDailyMetrics]:
        db = self.session_factory()
        try:
            records = RawDataStore(db).select_by_user_and_date(user_id, day)
            if not records:
                return None
            return apply_timing(self.normalizer.normalize(records, day=day), day, now=self.clock())
        finally:
            db.close()

    def validate_data_quality(self, user_id: str) -> DataQualityReport:
        db = self.session_factory()
        try:
            store = RawDataStore(db)
            records = store.recent_records(user_id, limit=QUALITY_SAMPLE_SIZE)
            profile = store.get_profile(user_id)

            meaningful = 0
            data_types: Dict[str, int] = {}
            samples = []
            for record in records:
                data_types[record.data_type] = data_types.get(record.data_type, 0) + 1
                if not is_meaningful(record.raw_json, record.data_type):
                    continue
                meaningful += 1
                if len(samples) < QUALITY_PREVIEW_COUNT:
                    serialized = json.dumps(record.raw_json)
                    samples.append({
                        "date": record.data_date.isoformat(),
                        "type": record.data_type,
                        "preview": serialized[:PREVIEW_CHARS] + "...",
                        "size": len(serialized),
                    })

            return DataQualityReport(
                total_records=len(records),
                meaningful_records=meaningful,
                empty_records=len(records) - meaningful,
                data_types=data_types,
                last_sync=profile.garmin_last_sync if profile else None,
                sample_data=samples,
            )
        finally:
            db.close()

    def clean_invalid_records(self, user_id: str) -> int:
        """Deletes the user's stored payloads that carry no measured data."""
        db = self.session_factory()
        try:
            store = RawDataStore(db)
            invalid = [
                r.id for r in store.records_for_user(user_id)
                if not is_meaningful(r.raw_json, r.data_type)
            ]
            deleted = store.delete_ids(invalid)
            logger.info(f"Removed {deleted} invalid records for user {user_id}")
            return deleted
        finally:
            db.close()
