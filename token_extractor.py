"""Pagination token recovery from Scholar author-search HTML.

The search page has no structured pagination contract, so the continuation
token is recovered by an ordered list of independent heuristics. Each
strategy takes the normalized HTML and returns a token or None; the first
strategy that returns a token wins.
"""

from __future__ import annotations

import logging
import os
import re
from typing import Callable

from models import PaginationToken, TokenKind

LOGGER = logging.getLogger(__name__)

Strategy = Callable[[str], PaginationToken | None]
OccurrencePolicy = Callable[[list[str]], str]

# Which after_author occurrence wins when a page carries several.
# Scholar renders the "next" control after "previous", so "last" is the default.
AFTER_AUTHOR_OCCURRENCE = os.getenv("SD_AFTER_AUTHOR_OCCURRENCE", "last")

NEXT_BUTTON_MARKER = "gs_btnPR"
NEXT_LABELS: tuple[str, ...] = ("Next", "下一页")

_AFTER_AUTHOR_RE = re.compile(r"after_author=([^&\"'\s><]+)")
_CSTART_RE = re.compile(r"cstart=(\d+)")
_START_RE = re.compile(r"[?&]start=(\d+)")
_NEXT_BUTTON_RE = re.compile(
    NEXT_BUTTON_MARKER + r"[^>]*(?:href|onclick)=[^>]*after_author=([^&\"'\\]+)"
)
_NEXT_LABEL_RE = re.compile(
    r"(?:" + "|".join(re.escape(label) for label in NEXT_LABELS) + r")"
    r"[^<]*<[^>]+(?:href|onclick)=[^>]*after_author=([^&\"'\\]+)",
    re.IGNORECASE,
)

# Scholar writes query strings inside onclick handlers with JS hex escapes.
_ESCAPES: tuple[tuple[str, str], ...] = (
    ("&amp;", "&"),
    ("\\x26", "&"),
    ("\\x3d", "="),
    ("\\x3D", "="),
)


def normalize_html(html: str) -> str:
    """Undo ampersand/equals encodings that hide query parameters."""
    for encoded, decoded in _ESCAPES:
        html = html.replace(encoded, decoded)
    return html


def first_occurrence(values: list[str]) -> str:
    return values[0]


def last_occurrence(values: list[str]) -> str:
    return values[-1]


_OCCURRENCE_POLICIES: dict[str, OccurrencePolicy] = {
    "first": first_occurrence,
    "last": last_occurrence,
}


def make_after_author_strategy(pick: OccurrencePolicy = last_occurrence) -> Strategy:
    """Build the "any after_author parameter" strategy with a given occurrence policy."""

    def _strategy(html: str) -> PaginationToken | None:
        matches = _AFTER_AUTHOR_RE.findall(html)
        if not matches:
            return None
        return PaginationToken(TokenKind.AFTER_AUTHOR, pick(matches))

    return _strategy


def cstart_strategy(html: str) -> PaginationToken | None:
    match = _CSTART_RE.search(html)
    if not match:
        return None
    return PaginationToken(TokenKind.CSTART, match.group(1))


def start_strategy(html: str) -> PaginationToken | None:
    # start=0 is the first page, not a forward token.
    forward = [value for value in _START_RE.findall(html) if int(value) > 0]
    if not forward:
        return None
    return PaginationToken(TokenKind.START, str(int(forward[-1])))


def next_button_strategy(html: str) -> PaginationToken | None:
    match = _NEXT_BUTTON_RE.search(html)
    if not match:
        return None
    return PaginationToken(TokenKind.AFTER_AUTHOR, match.group(1))


def next_label_strategy(html: str) -> PaginationToken | None:
    match = _NEXT_LABEL_RE.search(html)
    if not match:
        return None
    return PaginationToken(TokenKind.AFTER_AUTHOR, match.group(1))


def default_strategies(occurrence: str | None = None) -> tuple[Strategy, ...]:
    """Return the strategy chain in priority order.

    Args:
        occurrence: "first" or "last"; selects which after_author match wins.
            Reads SD_AFTER_AUTHOR_OCCURRENCE when not supplied, falling back
            to "last" if that value is not a known policy.

    Raises:
        ValueError: ``occurrence`` was given and is not a known policy.
    """
    if occurrence is None:
        name = AFTER_AUTHOR_OCCURRENCE.strip().lower()
        if name not in _OCCURRENCE_POLICIES:
            LOGGER.warning(
                "Unknown SD_AFTER_AUTHOR_OCCURRENCE=%r; using 'last'",
                AFTER_AUTHOR_OCCURRENCE,
            )
            name = "last"
    else:
        name = occurrence.strip().lower()
    pick = _OCCURRENCE_POLICIES.get(name)
    if pick is None:
        raise ValueError(f"Unknown after_author occurrence policy: {name!r}")

    return (
        make_after_author_strategy(pick),
        cstart_strategy,
        start_strategy,
        next_button_strategy,
        next_label_strategy,
    )


DEFAULT_STRATEGIES: tuple[Strategy, ...] = default_strategies()


def has_next_marker(html: str) -> bool:
    """Return True if the page appears to render a "next" control at all."""
    return (
        NEXT_BUTTON_MARKER in html
        or ">Next<" in html
        or 'aria-label="Next"' in html
        or "下一页" in html
    )


def extract_token(
    html: str,
    strategies: tuple[Strategy, ...] | list[Strategy] = DEFAULT_STRATEGIES,
) -> PaginationToken | None:
    """Recover the forward pagination token from one page, or None when exhausted.

    Never raises for malformed input: a failing strategy is logged and skipped.
    """
    if not isinstance(html, str) or not html:
        return None

    normalized = normalize_html(html)
    for strategy in strategies:
        try:
            token = strategy(normalized)
        except Exception as exc:  # strategies are independent
            LOGGER.debug("Token strategy %s failed: %s", getattr(strategy, "__name__", strategy), exc)
            continue
        if token is not None:
            LOGGER.debug("Found %s token via %s", token.kind, getattr(strategy, "__name__", strategy))
            return token

    if has_next_marker(html):
        index = html.find(NEXT_BUTTON_MARKER)
        if index > -1:
            LOGGER.debug(
                "Next control present but no token extracted; context: %s",
                html[max(0, index - 100) : index + 400],
            )
        else:
            LOGGER.debug("Next control present but no token extracted")
    return None
