from __future__ import annotations

import pytest

from lecture_tracker.services.sanitizer import (
    extract_playlist_id,
    resolve_playlist_reference,
    sanitize_playlist_id,
    sanitize_source_url,
    validate_api_key,
)
from tests.fake_video_api import VALID_API_KEY


def test_validate_api_key_accepts_well_formed_keys() -> None:
    assert validate_api_key(VALID_API_KEY) is True
    assert validate_api_key("a" * 35) is True
    assert validate_api_key("A-b_" * 11) is True


@pytest.mark.parametrize(
    "candidate",
    [
        None,
        "",
        "short-key",
        "a" * 46,
        "contains spaces in the middle of the key!",
        "your_api_key_here",
        12345,
    ],
)
def test_validate_api_key_rejects_malformed_values(candidate: object) -> None:
    assert validate_api_key(candidate) is False


def test_sanitize_playlist_id_strips_disallowed_characters() -> None:
    assert sanitize_playlist_id("PL<script>abc123</script>xyz") == "PLscriptabc123scriptxyz"
    assert sanitize_playlist_id("  PL_valid-id_123  ") == "PL_valid-id_123"


@pytest.mark.parametrize(
    "candidate",
    [None, "", "short", "PL!!!!!!!!!!!", "x" * 51, 42],
)
def test_sanitize_playlist_id_rejects_out_of_range_results(candidate: object) -> None:
    assert sanitize_playlist_id(candidate) is None


@pytest.mark.parametrize(
    "candidate",
    [
        "PLabcdefghij",
        "PL<>abc;def'ghij",
        "a b c d e f g h i j k",
        "!!!",
        "x" * 60,
        "PL_ok-" * 9,
    ],
)
def test_sanitize_playlist_id_is_idempotent(candidate: str) -> None:
    once = sanitize_playlist_id(candidate)
    if once is None:
        return
    assert sanitize_playlist_id(once) == once


def test_sanitize_source_url_enforces_host_allow_list() -> None:
    assert (
        sanitize_source_url("https://www.youtube.com/playlist?list=PLabcdefghij")
        == "https://www.youtube.com/playlist?list=PLabcdefghij"
    )
    assert sanitize_source_url("https://m.youtube.com/watch?v=1&list=PLabcdefghij") is not None
    assert sanitize_source_url("https://youtube.com.evil.example/playlist?list=PLabcdefghij") is None
    assert sanitize_source_url("https://vimeo.com/123") is None
    assert sanitize_source_url("javascript:alert(1)") is None
    assert sanitize_source_url("not a url") is None
    assert sanitize_source_url(None) is None


def test_extract_playlist_id_reads_list_parameter() -> None:
    assert (
        extract_playlist_id("https://www.youtube.com/watch?v=abc&list=PLabcdefghij&index=2")
        == "PLabcdefghij"
    )
    assert extract_playlist_id("https://www.youtube.com/playlist?list=PLabcdefghij#top") == (
        "PLabcdefghij"
    )
    assert extract_playlist_id("https://www.youtube.com/watch?v=abc") is None
    assert extract_playlist_id("https://www.youtube.com/playlist?list=short") is None
    assert extract_playlist_id(None) is None


def test_resolve_playlist_reference_accepts_ids_and_allow_listed_urls() -> None:
    assert resolve_playlist_reference("PLabcdefghij") == "PLabcdefghij"
    assert (
        resolve_playlist_reference("https://www.youtube.com/playlist?list=PLabcdefghij")
        == "PLabcdefghij"
    )
    assert resolve_playlist_reference("https://evil.example/playlist?list=PLabcdefghij") is None
    assert resolve_playlist_reference("nope") is None
