"""
Calendar Gateway - the only component that performs I/O against the calendar store.

This module provides:
- CalendarGateway: the async interface consumed by the reservation core
- GoogleCalendarGateway: Google Calendar API v3 implementation with
  service account authentication

Error mapping (GoogleCalendarGateway):
- HTTP 404/410 -> NotFoundError
- other HttpError, network/auth failures, open circuit -> UpstreamError
- call exceeding GATEWAY_TIMEOUT_SECONDS -> UpstreamError(UPSTREAM_TIMEOUT)

Only idempotent reads (list/get) are retried. insert/update/delete are
attempted exactly once: a retried insert could create a duplicate
appointment. A write that times out is still awaited until its executor
thread returns, then reported as UPSTREAM_TIMEOUT.
"""

import asyncio
import logging
from datetime import datetime
from typing import Any, Callable, Protocol
from uuid import uuid4

import pybreaker
from google.auth.exceptions import GoogleAuthError
from google.oauth2 import service_account
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError

from agenda.errors import NotFoundError, UpstreamError
from agenda.models import EventPage
from shared.circuit_breaker import calendar_breaker
from shared.config import Settings
from shared.resilient_api import call_with_retry

logger = logging.getLogger(__name__)

SCOPES = ["https://www.googleapis.com/auth/calendar"]
TOKEN_URI = "https://oauth2.googleapis.com/token"

# Google's maximum page size for events.list
MAX_PAGE_SIZE = 2500


class CalendarGateway(Protocol):
    """Async interface to the calendar store."""

    async def list_events(
        self,
        calendar_id: str,
        time_min: datetime | None = None,
        time_max: datetime | None = None,
        *,
        query: str | None = None,
        max_results: int = 250,
        page_token: str | None = None,
    ) -> EventPage:
        """Events overlapping [time_min, time_max), recurring events expanded, ordered by start."""
        ...

    async def get_event(self, calendar_id: str, event_id: str) -> dict[str, Any]: ...

    async def insert_event(
        self, calendar_id: str, event: dict[str, Any], *, with_meet_link: bool = False
    ) -> dict[str, Any]: ...

    async def update_event(
        self, calendar_id: str, event_id: str, event: dict[str, Any]
    ) -> dict[str, Any]: ...

    async def delete_event(self, calendar_id: str, event_id: str) -> None: ...


def load_credentials(settings: Settings) -> service_account.Credentials:
    """
    Build service account credentials from settings.

    Prefers GOOGLE_SERVICE_ACCOUNT_JSON (key file); falls back to the
    GOOGLE_CLIENT_EMAIL + GOOGLE_PRIVATE_KEY pair.

    Raises:
        ValueError: if neither source is configured
    """
    if settings.GOOGLE_SERVICE_ACCOUNT_JSON:
        return service_account.Credentials.from_service_account_file(
            settings.GOOGLE_SERVICE_ACCOUNT_JSON,
            scopes=SCOPES
        )

    if settings.GOOGLE_CLIENT_EMAIL and settings.GOOGLE_PRIVATE_KEY:
        return service_account.Credentials.from_service_account_info(
            {
                "type": "service_account",
                "client_email": settings.GOOGLE_CLIENT_EMAIL,
                "private_key": settings.google_private_key,
                "token_uri": TOKEN_URI,
            },
            scopes=SCOPES
        )

    raise ValueError(
        "Google credentials missing: set GOOGLE_SERVICE_ACCOUNT_JSON or "
        "GOOGLE_CLIENT_EMAIL + GOOGLE_PRIVATE_KEY"
    )


class GoogleCalendarGateway:
    """
    Google Calendar API client wrapper.

    googleapiclient is blocking, so each request runs in the default
    executor and is awaited with a timeout. httplib2 connections are not
    thread-safe: every call builds its own API resource.

    Usage:
        gateway = GoogleCalendarGateway(settings)
        page = await gateway.list_events(calendar_id, time_min, time_max)
    """

    def __init__(
        self,
        settings: Settings,
        *,
        credentials: Any = None,
        service_factory: Callable[[], Any] | None = None,
        breaker: pybreaker.CircuitBreaker | None = None,
        retry_initial_delay: float = 1.0,
    ):
        self.timeout = settings.GATEWAY_TIMEOUT_SECONDS
        self.read_retries = settings.GATEWAY_READ_RETRIES
        self.retry_initial_delay = retry_initial_delay
        self.breaker = breaker or calendar_breaker

        if service_factory is not None:
            self._service_factory = service_factory
        else:
            try:
                self._credentials = credentials or load_credentials(settings)
            except Exception as e:
                logger.error(f"Failed to initialize Google Calendar API client: {e}")
                raise
            self._service_factory = self._build_service
            logger.info("Google Calendar API client initialized successfully")

    def _build_service(self):
        return build("calendar", "v3", credentials=self._credentials, cache_discovery=False)

    # ------------------------------------------------------------------
    # Request execution
    # ------------------------------------------------------------------

    async def _execute(
        self, request_factory: Callable[[Any], Any], *, settle_on_timeout: bool = False
    ) -> Any:
        """
        Run one request in the executor, bounded by GATEWAY_TIMEOUT_SECONDS.

        The executor thread cannot be cancelled. With settle_on_timeout a
        timed-out request is still awaited until its thread returns before
        TimeoutError propagates, so a write never lands after the caller
        released its slot lock.
        """
        loop = asyncio.get_running_loop()

        def run():
            request = request_factory(self._service_factory())
            return self.breaker.call(request.execute)

        future = loop.run_in_executor(None, run)
        if not settle_on_timeout:
            return await asyncio.wait_for(future, timeout=self.timeout)

        try:
            return await asyncio.wait_for(asyncio.shield(future), timeout=self.timeout)
        except TimeoutError:
            logger.warning(f"Calendar write exceeded {self.timeout}s, waiting for it to settle")
            try:
                late = await future
            except Exception as e:
                logger.warning(f"Timed-out calendar write failed: {type(e).__name__}: {e}")
            else:
                event_id = late.get("id") if isinstance(late, dict) else None
                logger.warning(
                    f"Timed-out calendar write completed late | event_id={event_id}",
                    extra={"event_id": event_id},
                )
            raise

    async def _call(
        self,
        operation: str,
        request_factory: Callable[[Any], Any],
        *,
        retry: bool = False,
        event_id: str | None = None,
    ) -> Any:
        """Run one API request and translate failures into the core's error taxonomy."""
        details: dict[str, Any] = {"operation": operation}
        if event_id:
            details["event_id"] = event_id

        try:
            if retry:
                return await call_with_retry(
                    self._execute,
                    request_factory,
                    max_retries=self.read_retries,
                    initial_delay=self.retry_initial_delay,
                )
            return await self._execute(request_factory, settle_on_timeout=True)

        except HttpError as e:
            status = e.resp.status
            if status in (404, 410):
                logger.info(f"Calendar event not found | operation={operation} | event_id={event_id}")
                raise NotFoundError(
                    "Evento não encontrado na agenda", details=details
                ) from e
            logger.error(f"HTTP error on calendar {operation} | status={status}: {e}")
            raise UpstreamError(
                f"Google Calendar respondeu com erro {status}",
                details={**details, "status": status},
                original_error=e,
            ) from e

        except TimeoutError as e:
            logger.error(f"Calendar {operation} timed out after {self.timeout}s")
            raise UpstreamError(
                "Tempo esgotado ao acessar a agenda",
                error_code="UPSTREAM_TIMEOUT",
                details={**details, "timeout_seconds": self.timeout},
                original_error=e,
            ) from e

        except pybreaker.CircuitBreakerError as e:
            logger.warning(f"Circuit breaker open, calendar {operation} rejected")
            raise UpstreamError(
                "Agenda temporariamente indisponível",
                details=details,
                original_error=e,
            ) from e

        except (GoogleAuthError, OSError) as e:
            logger.error(f"Calendar {operation} failed: {type(e).__name__}: {e}")
            raise UpstreamError(
                "Falha de comunicação com a agenda",
                details=details,
                original_error=e,
            ) from e

    # ------------------------------------------------------------------
    # Gateway operations
    # ------------------------------------------------------------------

    async def list_events(
        self,
        calendar_id: str,
        time_min: datetime | None = None,
        time_max: datetime | None = None,
        *,
        query: str | None = None,
        max_results: int = 250,
        page_token: str | None = None,
    ) -> EventPage:
        params: dict[str, Any] = {
            "calendarId": calendar_id,
            "singleEvents": True,
            "orderBy": "startTime",
            "maxResults": min(max_results, MAX_PAGE_SIZE),
        }
        if time_min is not None:
            params["timeMin"] = time_min.isoformat()
        if time_max is not None:
            params["timeMax"] = time_max.isoformat()
        if query:
            params["q"] = query
        if page_token:
            params["pageToken"] = page_token

        result = await self._call(
            "list_events",
            lambda service: service.events().list(**params),
            retry=True,
        )
        return EventPage(
            items=result.get("items", []),
            next_page_token=result.get("nextPageToken"),
        )

    async def get_event(self, calendar_id: str, event_id: str) -> dict[str, Any]:
        return await self._call(
            "get_event",
            lambda service: service.events().get(calendarId=calendar_id, eventId=event_id),
            retry=True,
            event_id=event_id,
        )

    async def insert_event(
        self, calendar_id: str, event: dict[str, Any], *, with_meet_link: bool = False
    ) -> dict[str, Any]:
        body = dict(event)
        params: dict[str, Any] = {"calendarId": calendar_id}

        if with_meet_link:
            body["conferenceData"] = {
                "createRequest": {
                    "requestId": uuid4().hex,
                    "conferenceSolutionKey": {"type": "hangoutsMeet"},
                }
            }
            params["conferenceDataVersion"] = 1
        if body.get("attendees"):
            params["sendUpdates"] = "all"

        created = await self._call(
            "insert_event",
            lambda service: service.events().insert(body=body, **params),
        )
        logger.info(
            f"Created calendar event | event_id={created.get('id')}",
            extra={"event_id": created.get("id")},
        )
        return created

    async def update_event(
        self, calendar_id: str, event_id: str, event: dict[str, Any]
    ) -> dict[str, Any]:
        updated = await self._call(
            "update_event",
            lambda service: service.events().update(
                calendarId=calendar_id, eventId=event_id, body=event
            ),
            event_id=event_id,
        )
        logger.info(f"Updated calendar event | event_id={event_id}", extra={"event_id": event_id})
        return updated

    async def delete_event(self, calendar_id: str, event_id: str) -> None:
        await self._call(
            "delete_event",
            lambda service: service.events().delete(calendarId=calendar_id, eventId=event_id),
            event_id=event_id,
        )
        logger.info(f"Deleted calendar event | event_id={event_id}", extra={"event_id": event_id})
