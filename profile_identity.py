"""Identity of the Scholar profile being viewed: user id and display name."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass

import requests
from bs4 import BeautifulSoup

from record_parser import extract_subject_id
from scholar_client import REQUEST_TIMEOUT_SECONDS, USER_AGENT

LOGGER = logging.getLogger(__name__)

_PARENTHESIZED_RE = re.compile(r"\s*\([^)]*\)\s*")
_LATIN_PREFIX_RE = re.compile(r"^[A-Za-z\s.\-']+")


@dataclass(frozen=True, slots=True)
class ProfileIdentity:
    user_id: str | None
    name: str | None


def extract_user_id(url: str) -> str | None:
    return extract_subject_id(url)


def extract_author_name(html: str) -> str | None:
    """Return the Latin part of the profile's display name.

    "Jia Wang (王佳)" and "Xing Xie 谢幸" both reduce to their Latin prefix;
    names with no Latin prefix are returned cleaned but otherwise unchanged.
    """
    soup = BeautifulSoup(html or "", "html.parser")
    element = soup.select_one("#gsc_prf_in")
    if element is None:
        return None

    full_name = _PARENTHESIZED_RE.sub(" ", element.get_text(strip=True)).strip()
    match = _LATIN_PREFIX_RE.match(full_name)
    if match and match.group(0).strip():
        return match.group(0).strip()
    return full_name or None


def fetch_profile_identity(url: str) -> ProfileIdentity:
    """Fetch a profile page and extract who it belongs to."""
    user_id = extract_user_id(url)
    try:
        response = requests.get(url, headers={"User-Agent": USER_AGENT}, timeout=REQUEST_TIMEOUT_SECONDS)
        response.raise_for_status()
    except requests.RequestException as exc:
        raise RuntimeError(f"Failed to fetch profile page {url}: {exc}") from exc

    name = extract_author_name(response.text)
    LOGGER.info("Profile identity: user_id=%s name=%s", user_id, name)
    return ProfileIdentity(user_id=user_id, name=name)
