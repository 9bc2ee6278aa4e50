"""Aggregation of paginated author search results for one subject at a time.

The engine owns the only mutable session state. Everything it touches across
an await (the rate-limit sleep and the fetch) is re-checked afterwards, so a
newer search always wins over a stale in-flight one.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any, Awaitable, Callable

from cache_store import CacheStore
from models import AggregatedSession, ErrorKind, FetchResult, PaginationToken, ResultRecord
from rate_limiter import DEFAULT_LIMITER, RateLimiter
from record_parser import parse_records
from scholar_client import request_search

PAGE_SIZE = 10

NO_MORE_RESULTS_MESSAGE = "No more results"
SUPERSEDED_MESSAGE = "Superseded by a newer search"
UNEXPECTED_ERROR_MESSAGE = "An unexpected error occurred."
RETRY_LATER_HINT = "Try again in a few minutes."

LOGGER = logging.getLogger(__name__)

FetchFn = Callable[[str, PaginationToken | None], Awaitable[FetchResult]]
ChangeListener = Callable[["SearchState", dict[str, Any]], None]


class SearchState(StrEnum):
    IDLE = "idle"
    LOADING = "loading"
    POPULATED = "populated"
    ERROR = "error"


@dataclass(frozen=True, slots=True)
class SearchOutcome:
    """Result of start_search / load_more / next_page as seen by the caller."""

    success: bool
    records: list[ResultRecord] = field(default_factory=list)
    new_count: int = 0
    error_kind: ErrorKind | None = None
    message: str = ""
    from_cache: bool = False
    superseded: bool = False

    @property
    def retry_hint(self) -> str | None:
        if self.error_kind in (ErrorKind.RATE_LIMITED, ErrorKind.CAPTCHA):
            return RETRY_LATER_HINT
        return None


def exclude_subject(records: list[ResultRecord], exclude_id: str | None) -> list[ResultRecord]:
    """Drop the profile being viewed from its own result list."""
    if exclude_id is None:
        return list(records)
    return [record for record in records if record.subject_id != exclude_id]


class AggregationEngine:
    """Search, load-more and display paging over one aggregated session.

    Args:
        fetch: Async fetch collaborator ``(subject, token) -> FetchResult``.
        cache: Write-through cache; a private in-memory store by default.
        limiter: Shared rate limiter; the process-wide one by default.
        on_change: Called on every state transition with the state and its
            payload (``{}`` while loading, ``records``/``has_more`` when
            populated, ``error_kind``/``message`` on error).
        page_size: Records per display page.
    """

    def __init__(
        self,
        fetch: FetchFn = request_search,
        cache: CacheStore | None = None,
        limiter: RateLimiter | None = None,
        on_change: ChangeListener | None = None,
        page_size: int = PAGE_SIZE,
    ) -> None:
        if page_size < 1:
            raise ValueError("page_size must be positive")
        self._fetch = fetch
        self.cache = cache if cache is not None else CacheStore()
        self.limiter = limiter if limiter is not None else DEFAULT_LIMITER
        self._on_change = on_change
        self.page_size = page_size

        self.state = SearchState.IDLE
        self.session: AggregatedSession | None = None
        self.error_kind: ErrorKind | None = None
        self.error_message = ""
        self._loading_more = False
        self._generation = 0

    # ------------------------------------------------------------------
    # Read-only views
    # ------------------------------------------------------------------

    @property
    def records(self) -> list[ResultRecord]:
        return list(self.session.records) if self.session else []

    @property
    def has_more(self) -> bool:
        return self.session is not None and self.session.token is not None

    @property
    def loading_more(self) -> bool:
        return self._loading_more

    # ------------------------------------------------------------------
    # Search lifecycle
    # ------------------------------------------------------------------

    async def start_search(
        self,
        subject: str,
        exclude_id: str | None = None,
        skip_cache: bool = False,
    ) -> SearchOutcome:
        """Run a fresh search, replacing any previous session.

        A cache hit populates immediately without waiting or fetching. A fetch
        failure moves to ERROR and discards the previous records.
        """
        if not subject or not subject.strip():
            raise ValueError("subject is required")

        self._generation += 1
        generation = self._generation
        self.session = None
        self.error_kind = None
        self.error_message = ""
        self._transition(SearchState.LOADING, {})

        if not skip_cache:
            entry = self.cache.get(subject)
            if entry is not None:
                session = AggregatedSession(subject=subject, exclude_id=exclude_id, token=entry.token)
                session.merge(exclude_subject(entry.records, exclude_id))
                self.session = session
                self._populated()
                return SearchOutcome(
                    success=True,
                    records=list(session.records),
                    new_count=len(session.records),
                    from_cache=True,
                )

        result = await self._rate_limited_fetch(subject, None, generation)
        if result is None or generation != self._generation:
            LOGGER.info("Discarding superseded search result for subject=%s", subject)
            return SearchOutcome(success=False, message=SUPERSEDED_MESSAGE, superseded=True)

        if not result.success:
            self.error_kind = result.error_kind or ErrorKind.UNKNOWN
            self.error_message = result.message
            LOGGER.warning(
                "Search failed for subject=%s: kind=%s message=%s",
                subject,
                self.error_kind,
                self.error_message,
            )
            self._transition(
                SearchState.ERROR,
                {"error_kind": self.error_kind, "message": self.error_message},
            )
            return SearchOutcome(success=False, error_kind=self.error_kind, message=self.error_message)

        session = AggregatedSession(subject=subject, exclude_id=exclude_id, token=result.next_token)
        session.merge(exclude_subject(parse_records(result.html), exclude_id))
        self.session = session
        self.cache.put(subject, session.records, session.token)

        LOGGER.info(
            "Found %s authors for subject=%s, has_more=%s",
            len(session.records),
            subject,
            session.token is not None,
        )
        self._populated()
        return SearchOutcome(success=True, records=list(session.records), new_count=len(session.records))

    async def load_more(self) -> SearchOutcome:
        """Fetch the next result page and append it to the session.

        Returns a "No more results" failure without any network call when there
        is no token, the engine is not populated, or a load is already running.
        Failures leave the accumulated records untouched.
        """
        session = self.session
        if (
            self.state is not SearchState.POPULATED
            or session is None
            or session.token is None
            or self._loading_more
        ):
            return SearchOutcome(success=False, message=NO_MORE_RESULTS_MESSAGE)

        self._loading_more = True
        generation = self._generation
        LOGGER.info("Loading more authors for subject=%s", session.subject)
        try:
            result = await self._rate_limited_fetch(session.subject, session.token, generation)
            if result is None or generation != self._generation or self.session is not session:
                LOGGER.info("Discarding superseded load-more for subject=%s", session.subject)
                return SearchOutcome(success=False, message=SUPERSEDED_MESSAGE, superseded=True)

            if not result.success:
                error_kind = result.error_kind or ErrorKind.UNKNOWN
                LOGGER.warning(
                    "Load more failed for subject=%s: kind=%s message=%s",
                    session.subject,
                    error_kind,
                    result.message,
                )
                return SearchOutcome(success=False, error_kind=error_kind, message=result.message)

            added = session.merge(exclude_subject(parse_records(result.html), session.exclude_id))
            session.token = result.next_token
            self.cache.put(session.subject, session.records, session.token)

            LOGGER.info(
                "Loaded %s more authors for subject=%s, total=%s, has_more=%s",
                added,
                session.subject,
                len(session.records),
                session.token is not None,
            )
            self._populated()
            return SearchOutcome(success=True, records=list(session.records), new_count=added)
        finally:
            self._loading_more = False

    async def _rate_limited_fetch(
        self,
        subject: str,
        token: PaginationToken | None,
        generation: int,
    ) -> FetchResult | None:
        """Wait out the rate limit, then fetch. None means the search went stale while waiting."""
        await self.limiter.wait()
        if generation != self._generation:
            return None

        self.limiter.record_fetch()
        try:
            return await self._fetch(subject, token)
        except Exception as exc:  # fetch boundary may raise anything
            LOGGER.exception("Unexpected fetch error for subject=%s: %s", subject, exc)
            return FetchResult.failure(ErrorKind.UNKNOWN, str(exc) or UNEXPECTED_ERROR_MESSAGE)

    def clear_cache(self) -> None:
        if self.session is not None:
            self.cache.clear(self.session.subject)

    # ------------------------------------------------------------------
    # Display paging
    # ------------------------------------------------------------------

    @property
    def current_page(self) -> int:
        return self.session.current_page if self.session else 1

    @property
    def total_pages(self) -> int:
        if self.session is None:
            return 0
        return math.ceil(len(self.session.records) / self.page_size)

    def page_records(self, page: int | None = None) -> list[ResultRecord]:
        if self.session is None:
            return []
        number = self.session.current_page if page is None else page
        start = (number - 1) * self.page_size
        if start < 0:
            return []
        return self.session.records[start : start + self.page_size]

    def go_to_page(self, page: int) -> int:
        """Move the display cursor, clamped to the loaded pages; returns the new page."""
        if self.session is None:
            return 1
        self.session.current_page = max(1, min(page, max(self.total_pages, 1)))
        return self.session.current_page

    def previous_page(self) -> int:
        return self.go_to_page(self.current_page - 1)

    async def next_page(self) -> SearchOutcome:
        """Advance one display page, fetching from the server when on the last loaded page."""
        if self.session is None:
            return SearchOutcome(success=False, message=NO_MORE_RESULTS_MESSAGE)

        if self.session.current_page < self.total_pages:
            self.go_to_page(self.session.current_page + 1)
            return SearchOutcome(success=True, records=self.page_records())

        outcome = await self.load_more()
        if not outcome.success or self.session is None:
            return outcome

        self.go_to_page(self.session.current_page + 1)
        return SearchOutcome(success=True, records=self.page_records(), new_count=outcome.new_count)

    # ------------------------------------------------------------------
    # Notifications
    # ------------------------------------------------------------------

    def _populated(self) -> None:
        self._transition(
            SearchState.POPULATED,
            {"records": self.records, "has_more": self.has_more},
        )

    def _transition(self, state: SearchState, payload: dict[str, Any]) -> None:
        self.state = state
        LOGGER.debug("Engine state -> %s", state)
        if self._on_change is not None:
            self._on_change(state, payload)
