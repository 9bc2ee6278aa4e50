"""Shared typed models for author search aggregation."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from enum import StrEnum
from typing import Any


class TokenKind(StrEnum):
    """How a pagination token is attached to the next request.

    The value doubles as the query parameter name.
    """

    CSTART = "cstart"
    START = "start"
    AFTER_AUTHOR = "after_author"


class ErrorKind(StrEnum):
    RATE_LIMITED = "rate_limited"
    CAPTCHA = "captcha"
    NETWORK_ERROR = "network_error"
    UNKNOWN = "unknown"


@dataclass(frozen=True, slots=True)
class PaginationToken:
    """Opaque continuation marker recovered from one result page."""

    kind: TokenKind
    value: str

    def as_query(self) -> dict[str, str]:
        return {self.kind.value: self.value}

    def to_dict(self) -> dict[str, str]:
        return {"kind": self.kind.value, "value": self.value}

    @classmethod
    def from_dict(cls, data: Any) -> PaginationToken | None:
        if not isinstance(data, dict):
            return None
        try:
            kind = TokenKind(data.get("kind"))
        except ValueError:
            return None
        value = data.get("value")
        if not isinstance(value, str) or not value:
            return None
        return cls(kind=kind, value=value)


@dataclass(frozen=True, slots=True)
class ResultRecord:
    """One author profile found by the search."""

    name: str
    profile_url: str
    affiliation: str = ""
    subject_id: str | None = None
    contact_domain: str | None = None
    citation_count: int | None = None
    thumbnail_url: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ResultRecord:
        return cls(
            name=data["name"],
            profile_url=data["profile_url"],
            affiliation=data.get("affiliation") or "",
            subject_id=data.get("subject_id"),
            contact_domain=data.get("contact_domain"),
            citation_count=data.get("citation_count"),
            thumbnail_url=data.get("thumbnail_url"),
        )


@dataclass(frozen=True, slots=True)
class FetchResult:
    """Response shape of the fetch collaborator for one search page."""

    success: bool
    html: str = ""
    next_token: PaginationToken | None = None
    error_kind: ErrorKind | None = None
    message: str = ""

    @classmethod
    def ok(cls, html: str, next_token: PaginationToken | None) -> FetchResult:
        return cls(success=True, html=html, next_token=next_token)

    @classmethod
    def failure(cls, error_kind: ErrorKind, message: str) -> FetchResult:
        return cls(success=False, error_kind=error_kind, message=message)


@dataclass(frozen=True, slots=True)
class CacheEntry:
    subject: str
    timestamp: int  # epoch milliseconds
    records: list[ResultRecord]
    token: PaginationToken | None


@dataclass(slots=True)
class AggregatedSession:
    """In-memory accumulation of all records fetched for one search.

    The record list only grows; a new search creates a new session.
    """

    subject: str
    exclude_id: str | None = None
    records: list[ResultRecord] = field(default_factory=list)
    token: PaginationToken | None = None
    current_page: int = 1

    def merge(self, incoming: list[ResultRecord]) -> int:
        """Append records not already present by identity; return how many were added."""
        # Records without an id are never treated as duplicates.
        seen = {record.subject_id for record in self.records if record.subject_id is not None}
        added = 0
        for record in incoming:
            if record.subject_id is not None:
                if record.subject_id in seen:
                    continue
                seen.add(record.subject_id)
            self.records.append(record)
            added += 1
        return added
