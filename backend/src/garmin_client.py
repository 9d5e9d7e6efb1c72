import re
import asyncio
import logging
from datetime import date
from typing import Any, Optional, Union

import requests
from pydantic import BaseModel
from requests.exceptions import ConnectionError as TransportError, RequestException, Timeout
from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from .ingestion.validator import is_meaningful

logger = logging.getLogger("GarminClient")

SSO_SIGNIN_URL = "https://sso.garmin.com/sso/signin"
PROXY_BASE_URL = "https://connect.garmin.com/modern/proxy"
USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)

# The sign-in page has embedded the token in three different ways over time
CSRF_PATTERNS = (
    re.compile(r'"_csrf":\s*"([^"]+)"'),
    re.compile(r'name="_csrf"\s+value="([^"]+)"'),
    re.compile(r"'_csrf':\s*'([^']+)'"),
)
REJECTION_MARKERS = ("Invalid username or password", "incorrect")
REDIRECT_STATUSES = (301, 302, 303, 307, 308)

ENDPOINTS = {
    "hrv": "/userstats-service/wellness/{account}?fromDate={date}&untilDate={date}",
    "sleep": "/wellness-service/wellness/dailySleepData/{account}?date={date}",
    "body_battery": "/wellness-service/wellness/dailyBodyBattery/{date}",
    "steps": "/usersummary-service/usersummary/daily/{account}?calendarDate={date}",
    "stress": "/wellness-service/wellness/dailyStress/{date}",
}


class FetchResult(BaseModel):
    success: bool
    data: Optional[Any] = None
    is_empty: bool = False
    error: Optional[str] = None


def extract_csrf_token(html: str) -> Optional[str]:
    for pattern in CSRF_PATTERNS:
        match = pattern.search(html or "")
        if match:
            return match.group(1)
    return None


class GarminConnectClient:
    """
    Session-cookie client for Garmin Connect's web proxy API.
    One instance owns one cookie jar and must not be shared between users.
    Blocking HTTP calls run in a worker thread so the event loop stays free.
    """
    def __init__(
        self,
        account_id: str,
        timeout: float = 30,
        max_attempts: int = 1,
        backoff_seconds: float = 1.0,
        session: Optional[requests.Session] = None,
    ):
        self.account_id = account_id
        self.timeout = timeout
        self.max_attempts = max(1, int(max_attempts))
        self.backoff_seconds = backoff_seconds
        self.session = session or requests.Session()
        self.session.headers.update({"User-Agent": USER_AGENT})
        self.authenticated = False

    # --- Authentication ---

    async def authenticate(self, email: str, password: str) -> bool:
        """Runs the SSO handshake. Returns False on rejection or network failure."""
        self.authenticated = await asyncio.to_thread(self._authenticate_blocking, email, password)
        return self.authenticated

    def _authenticate_blocking(self, email: str, password: str) -> bool:
        logger.info("Starting Garmin Connect authentication...")
        try:
            login_page = self.session.get(SSO_SIGNIN_URL, timeout=self.timeout)
            if not login_page.ok:
                logger.error(f"Failed to load login page: HTTP {login_page.status_code}")
                return False

            csrf_token = extract_csrf_token(login_page.text)
            if not csrf_token:
                logger.error("Could not find CSRF token in login page")
                return False

            response = self.session.post(
                SSO_SIGNIN_URL,
                data={
                    "username": email,
                    "password": password,
                    "_csrf": csrf_token,
                    "embed": "false",
                    "rememberme": "on",
                },
                headers={"Referer": SSO_SIGNIN_URL},
                allow_redirects=False,
                timeout=self.timeout,
            )

            if response.status_code in REDIRECT_STATUSES:
                location = response.headers.get("location", "")
                if "ticket" in location:
                    # Following the ticket URL sets the session cookies
                    self.session.get(location, allow_redirects=False, timeout=self.timeout)
                logger.info("Garmin authentication succeeded (redirect).")
                return True

            if 200 <= response.status_code < 300:
                if any(marker in response.text for marker in REJECTION_MARKERS):
                    logger.warning("Garmin rejected the supplied credentials.")
                    return False
                logger.info("Garmin authentication succeeded.")
                return True

            logger.warning(f"Garmin authentication failed with HTTP {response.status_code}")
            return False

        except RequestException as e:
            logger.error(f"Network error during Garmin authentication: {e}")
            return False

    # --- Data ---

    def endpoint_url(self, day: Union[date, str], metric_type: str) -> Optional[str]:
        template = ENDPOINTS.get(metric_type)
        if template is None:
            return None
        day_str = day.isoformat() if isinstance(day, date) else str(day)
        return PROXY_BASE_URL + template.format(account=self.account_id, date=day_str)

    async def fetch_data(self, day: Union[date, str], metric_type: str) -> FetchResult:
        """Fetches one metric for one date. Never raises for network or payload problems."""
        if not self.authenticated:
            return FetchResult(success=False, error="Client not authenticated")

        url = self.endpoint_url(day, metric_type)
        if url is None:
            return FetchResult(success=False, error="Unsupported metric type")

        try:
            response = await self._get_with_retry(url)
        except RequestException as e:
            logger.warning(f"Request for {metric_type} on {day} failed: {e}")
            return FetchResult(success=False, error=f"Request failed: {e}")

        if response.status_code == 204:
            return FetchResult(success=True, is_empty=True)
        if not 200 <= response.status_code < 300:
            return FetchResult(success=False, error=f"HTTP {response.status_code}")

        try:
            payload = response.json()
        except ValueError:
            return FetchResult(success=False, error="Invalid JSON")

        if not is_meaningful(payload, metric_type):
            logger.debug(f"No meaningful {metric_type} data for {day}")
            return FetchResult(success=True, is_empty=True)

        return FetchResult(success=True, data=payload)

    async def _get_with_retry(self, url: str) -> requests.Response:
        """GET with exponential backoff on transport errors. HTTP errors are not retried."""
        retrying = AsyncRetrying(
            stop=stop_after_attempt(self.max_attempts),
            wait=wait_exponential(multiplier=self.backoff_seconds, max=30),
            retry=retry_if_exception_type((TransportError, Timeout)),
            reraise=True,
        )
        async for attempt in retrying:
            with attempt:
                if attempt.retry_state.attempt_number > 1:
                    logger.info(f"Retrying {url} (attempt {attempt.retry_state.attempt_number})")
                response = await asyncio.to_thread(self.session.get, url, timeout=self.timeout)
        return response

    def close(self):
        self.session.close()
