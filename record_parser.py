"""Author-card parsing for Scholar author-search result pages."""

from __future__ import annotations

import logging
import os
import re
from urllib.parse import parse_qs, urljoin, urlparse

from bs4 import BeautifulSoup, Tag

from models import ResultRecord

SCHOLAR_BASE_URL = os.getenv("SCHOLAR_BASE_URL", "https://scholar.google.com")

RESULT_CARD_MARKER = "gsc_1usr"

LOGGER = logging.getLogger(__name__)

# "Verified email at mit.edu" and its localized variants ("bei", "de", "presso",
# ...). The domain is the first dotted token after a preposition; anything
# after it, such as " - Homepage" on profile headers, is ignored.
_EMAIL_PREPOSITIONS: tuple[str, ...] = ("at", "bei", "de", "à", "en", "presso", "su", "em")
_EMAIL_DOMAIN_RE = re.compile(
    r"\b(?:" + "|".join(_EMAIL_PREPOSITIONS) + r")\s+([\w-]+(?:\.[\w-]+)+)",
    re.IGNORECASE,
)
_DIGITS_RE = re.compile(r"\d+")
_THOUSANDS_SEP_RE = re.compile(r"(?<=\d)[,.\u00a0\u202f](?=\d{3}\b)")


def has_results(html: str) -> bool:
    """Return True if the page contains at least one author result card marker."""
    return RESULT_CARD_MARKER in html


def parse_records(html: str, base_url: str | None = None) -> list[ResultRecord]:
    """Parse every author card on the page, in document order.

    Cards without a name link are skipped. A card that fails to parse is
    logged and skipped; it never aborts the remaining cards.
    """
    base = base_url or SCHOLAR_BASE_URL
    soup = BeautifulSoup(html or "", "html.parser")

    records: list[ResultRecord] = []
    skipped = 0
    for card in soup.select(f".{RESULT_CARD_MARKER}"):
        try:
            record = _parse_card(card, base)
        except Exception as exc:
            LOGGER.warning("Failed to parse author card: %s", exc)
            continue
        if record is None:
            skipped += 1
            continue
        records.append(record)

    LOGGER.debug("Parsed %s author cards (skipped=%s)", len(records), skipped)
    return records


def extract_subject_id(profile_url: str) -> str | None:
    """Return the ``user`` query parameter of a profile URL, if any."""
    values = parse_qs(urlparse(profile_url).query).get("user")
    if not values or not values[0]:
        return None
    return values[0]


def _parse_card(card: Tag, base_url: str) -> ResultRecord | None:
    anchor = card.select_one(".gs_ai_name a")
    if anchor is None:
        return None

    name = anchor.get_text(strip=True)
    href = anchor.get("href")
    if not name or not href:
        return None

    profile_url = urljoin(base_url, href)

    return ResultRecord(
        name=name,
        profile_url=profile_url,
        affiliation=_text_of(card, ".gs_ai_aff") or "",
        subject_id=extract_subject_id(profile_url),
        contact_domain=_parse_contact_domain(_text_of(card, ".gs_ai_eml")),
        citation_count=_parse_citation_count(_text_of(card, ".gs_ai_cby")),
        thumbnail_url=_parse_thumbnail(card, base_url),
    )


def _text_of(card: Tag, selector: str) -> str | None:
    element = card.select_one(selector)
    if element is None:
        return None
    return element.get_text(" ", strip=True)


def _parse_contact_domain(text: str | None) -> str | None:
    if not text:
        return None
    match = _EMAIL_DOMAIN_RE.search(text)
    return match.group(1) if match else None


def _parse_citation_count(text: str | None) -> int | None:
    if not text:
        return None
    # "Cited by 1,234" / "Zitiert von: 1.234"
    match = _DIGITS_RE.search(_THOUSANDS_SEP_RE.sub("", text))
    return int(match.group(0)) if match else None


def _parse_thumbnail(card: Tag, base_url: str) -> str | None:
    image = card.select_one(".gs_ai_pho img")
    if image is None:
        return None
    src = image.get("src")
    if not src:
        return None
    return urljoin(base_url, src)
