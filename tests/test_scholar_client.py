from __future__ import annotations

from unittest.mock import MagicMock, patch

import pytest
import requests

from models import ErrorKind, PaginationToken, TokenKind
from scholar_client import build_search_url, fetch_author_search, is_captcha_page, request_search

_RESULTS_HTML = (
    '<div class="gsc_1usr"><h3 class="gs_ai_name"><a href="/citations?user=U1">Jane Doe</a></h3></div>'
    '<button class="gs_btnPR" onclick="window.location=\'/citations?view_op\\x3dsearch_authors'
    '\\x26after_author\\x3dNEXT42\\x26astart\\x3d10\'">Next</button>'
)


def _mock_resp(status_code: int = 200, text: str = "") -> MagicMock:
    """Return a mock requests.Response."""
    mock = MagicMock()
    mock.status_code = status_code
    mock.ok = 200 <= status_code < 400
    mock.text = text
    return mock


def test_build_search_url_first_page() -> None:
    assert build_search_url("Jane Doe") == (
        "https://scholar.google.com/citations?view_op=search_authors&mauthors=Jane%20Doe"
    )


@pytest.mark.parametrize(
    ("token", "suffix"),
    [
        (PaginationToken(TokenKind.CSTART, "40"), "&cstart=40"),
        (PaginationToken(TokenKind.START, "10"), "&start=10"),
        (PaginationToken(TokenKind.AFTER_AUTHOR, "abc_XYZ-1"), "&after_author=abc_XYZ-1"),
        (PaginationToken(TokenKind.AFTER_AUTHOR, "AbC%3D%3D"), "&after_author=AbC%3D%3D"),
        (PaginationToken(TokenKind.AFTER_AUTHOR, "a b"), "&after_author=a%20b"),
    ],
)
def test_build_search_url_attaches_token_parameter(token: PaginationToken, suffix: str) -> None:
    assert build_search_url("Jane Doe", token).endswith(suffix)


def test_fetch_success_extracts_next_token() -> None:
    with patch("scholar_client.requests.get", return_value=_mock_resp(text=_RESULTS_HTML)) as mock_get:
        result = fetch_author_search("Jane Doe")

    assert result.success is True
    assert result.html == _RESULTS_HTML
    assert result.next_token == PaginationToken(TokenKind.AFTER_AUTHOR, "NEXT42")
    assert mock_get.call_args.args[0].endswith("mauthors=Jane%20Doe")


def test_fetch_without_result_cards_has_no_next_token() -> None:
    html = '<p>No user profiles</p><a href="?cstart=20">x</a>'
    with patch("scholar_client.requests.get", return_value=_mock_resp(text=html)):
        result = fetch_author_search("Nobody")

    assert result.success is True
    assert result.next_token is None


def test_http_429_is_rate_limited() -> None:
    with patch("scholar_client.requests.get", return_value=_mock_resp(status_code=429)):
        result = fetch_author_search("Jane Doe")

    assert result.success is False
    assert result.error_kind == ErrorKind.RATE_LIMITED


def test_other_http_error_is_network_error() -> None:
    with patch("scholar_client.requests.get", return_value=_mock_resp(status_code=503)):
        result = fetch_author_search("Jane Doe")

    assert result.error_kind == ErrorKind.NETWORK_ERROR
    assert result.message == "HTTP error: 503"


def test_transport_exception_is_network_error() -> None:
    with patch("scholar_client.requests.get", side_effect=requests.ConnectionError("dns")):
        result = fetch_author_search("Jane Doe")

    assert result.success is False
    assert result.error_kind == ErrorKind.NETWORK_ERROR


@pytest.mark.parametrize(
    "body",
    [
        "<p>Our systems have detected unusual traffic from your computer network.</p>",
        "<p>Please show you're not a robot</p>",
    ],
)
def test_captcha_page_is_classified(body: str) -> None:
    assert is_captcha_page(body) is True
    with patch("scholar_client.requests.get", return_value=_mock_resp(text=body)):
        result = fetch_author_search("Jane Doe")

    assert result.error_kind == ErrorKind.CAPTCHA


@pytest.mark.asyncio
async def test_request_search_runs_fetch_off_the_event_loop() -> None:
    token = PaginationToken(TokenKind.CSTART, "10")
    with patch("scholar_client.requests.get", return_value=_mock_resp(text=_RESULTS_HTML)) as mock_get:
        result = await request_search("Jane Doe", token)

    assert result.success is True
    assert mock_get.call_args.args[0].endswith("&cstart=10")
