from __future__ import annotations

from collections.abc import Mapping
from typing import Any

import pytest

from lecture_tracker.telemetry import TelemetryClient, build_telemetry_client


class _CaptureSink:
    def __init__(self) -> None:
        self.events: list[tuple[str, dict[str, Any]]] = []

    def emit(self, *, event_name: str, attributes: Mapping[str, Any]) -> None:
        self.events.append((event_name, dict(attributes)))


def test_telemetry_client_redacts_sensitive_fields() -> None:
    sink = _CaptureSink()
    client = TelemetryClient(enabled=True, sink=sink)

    client.emit(
        "playlist.import.start",
        playlist_id="PLabcdefghij",
        note_preview="my private thoughts",
        api_key="secret",
        page_token="token-2",
        payload={"title": "nested"},
        count=3,
        title="  spaced   out  ",
    )

    assert len(sink.events) == 1
    event_name, attributes = sink.events[0]
    assert event_name == "playlist.import.start"
    assert attributes["playlist_id"] == "PLabcdefghij"
    assert attributes["count"] == 3
    assert attributes["note_preview"] == "[redacted]"
    assert attributes["api_key"] == "[redacted]"
    assert attributes["page_token"] == "[redacted]"
    assert attributes["payload"] == "dict"
    assert attributes["title"] == "spaced out"


def test_telemetry_client_truncates_long_strings() -> None:
    sink = _CaptureSink()
    client = TelemetryClient(enabled=True, sink=sink)

    client.emit("library.loaded", scope="x" * 200)

    _, attributes = sink.events[0]
    assert attributes["scope"] == "x" * 160 + "..."


def test_disabled_telemetry_client_does_not_emit() -> None:
    sink = _CaptureSink()
    client = TelemetryClient(enabled=False, sink=sink)

    client.emit("playlist.import.start", playlist_id="PLabcdefghij")
    with client.span("playlist.import"):
        pass

    assert sink.events == []


def test_build_telemetry_client_none_sink_is_disabled() -> None:
    assert build_telemetry_client(enabled=True, sink="none").enabled is False
    assert build_telemetry_client(enabled=False, sink="log").enabled is False
    assert build_telemetry_client(enabled=True, sink="log").enabled is True


def test_span_emits_start_and_finish_with_closing_attributes() -> None:
    sink = _CaptureSink()
    client = TelemetryClient(enabled=True, sink=sink)

    with client.span("playlist.import", scope="user-1") as span_attributes:
        span_attributes["video_count"] = 12

    assert [name for name, _ in sink.events] == ["playlist.import.start", "playlist.import.finish"]
    _, finish = sink.events[1]
    assert finish["scope"] == "user-1"
    assert finish["video_count"] == 12
    assert isinstance(finish["duration_ms"], int)


def test_span_emits_error_and_reraises() -> None:
    sink = _CaptureSink()
    client = TelemetryClient(enabled=True, sink=sink)

    with pytest.raises(LookupError):
        with client.span("playlist.import") as span_attributes:
            span_attributes["error_kind"] = "not_found"
            raise LookupError("missing")

    assert [name for name, _ in sink.events] == ["playlist.import.start", "playlist.import.error"]
    _, error = sink.events[1]
    assert error["error_type"] == "LookupError"
    assert error["error_kind"] == "not_found"
