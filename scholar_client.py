"""Google Scholar author-search fetch helpers."""

from __future__ import annotations

import asyncio
import logging
import os
from urllib.parse import quote

import requests

from models import ErrorKind, FetchResult, PaginationToken
from record_parser import SCHOLAR_BASE_URL, has_results
from token_extractor import extract_token

REQUEST_TIMEOUT_SECONDS = float(os.getenv("SCHOLAR_REQUEST_TIMEOUT_SECONDS", "20"))
USER_AGENT = os.getenv(
    "SCHOLAR_USER_AGENT",
    "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 (KHTML, like Gecko) "
    "Chrome/126.0 Safari/537.36",
)

# Body fragments of Scholar's anti-bot interstitial.
CAPTCHA_MARKERS: tuple[str, ...] = ("Please show you", "unusual traffic")

RATE_LIMITED_MESSAGE = "Google Scholar is limiting requests. Please try again in a few minutes."
CAPTCHA_MESSAGE = (
    "Google Scholar is requesting CAPTCHA verification. "
    "Please visit Google Scholar directly and complete the verification."
)
CONNECTION_MESSAGE = "Unable to connect. Check your internet connection."

LOGGER = logging.getLogger(__name__)


def build_search_url(subject: str, token: PaginationToken | None = None) -> str:
    """Construct the author-search URL, attaching the token's query parameter."""
    url = (
        f"{SCHOLAR_BASE_URL}/citations?view_op=search_authors"
        f"&mauthors={quote(subject, safe='')}"
    )
    if token is not None:
        # Token values come from hrefs and may already carry percent-escapes.
        for name, value in token.as_query().items():
            url += f"&{name}={quote(value, safe='%')}"
    return url


def is_captcha_page(html: str) -> bool:
    return any(marker in html for marker in CAPTCHA_MARKERS)


def fetch_author_search(subject: str, token: PaginationToken | None = None) -> FetchResult:
    """Fetch one page of author search results and classify the outcome.

    Never raises for transport problems; they are reported as FetchResult
    failures with the matching ErrorKind.
    """
    url = build_search_url(subject, token)
    LOGGER.info("Scholar search: subject=%s token=%s", subject, token.value if token else None)
    LOGGER.debug("Scholar search URL: %s", url)

    try:
        response = requests.get(
            url,
            headers={"User-Agent": USER_AGENT},
            timeout=REQUEST_TIMEOUT_SECONDS,
        )
    except requests.RequestException as exc:
        LOGGER.warning("Scholar search: request failed for subject=%s: %s", subject, exc)
        return FetchResult.failure(ErrorKind.NETWORK_ERROR, CONNECTION_MESSAGE)

    if response.status_code == 429:
        LOGGER.warning("Scholar search: rate limited (HTTP 429) for subject=%s", subject)
        return FetchResult.failure(ErrorKind.RATE_LIMITED, RATE_LIMITED_MESSAGE)
    if not response.ok:
        LOGGER.warning("Scholar search: HTTP %s for subject=%s", response.status_code, subject)
        return FetchResult.failure(ErrorKind.NETWORK_ERROR, f"HTTP error: {response.status_code}")

    html = response.text
    if is_captcha_page(html):
        LOGGER.warning("Scholar search: CAPTCHA challenge for subject=%s", subject)
        return FetchResult.failure(ErrorKind.CAPTCHA, CAPTCHA_MESSAGE)

    next_token = extract_token(html) if has_results(html) else None
    LOGGER.info(
        "Scholar search: fetched subject=%s bytes=%s has_more=%s",
        subject,
        len(html),
        next_token is not None,
    )
    return FetchResult.ok(html, next_token)


async def request_search(subject: str, token: PaginationToken | None = None) -> FetchResult:
    """Async boundary used by the aggregation engine; the HTTP call runs in a worker thread."""
    return await asyncio.to_thread(fetch_author_search, subject, token)
