"""Tests for side-channel events, publishing and receiving."""

from __future__ import annotations

import json
import logging
from typing import Any, get_args

import pytest
from pydantic import ValidationError

from ganglia.models.enums import ArtifactType, StatusAction
from ganglia.sidechannel.chunking import encode_chunks
from ganglia.sidechannel.events import (
    Artifact,
    ChunkEnvelope,
    CodeArtifact,
    DiffArtifact,
    ImageArtifact,
    MetricsEvent,
    SearchResultsArtifact,
    StatusEvent,
    parse_side_channel_event,
    status_from_tool_call,
)
from ganglia.sidechannel.publisher import SideChannelPublisher
from ganglia.sidechannel.receiver import ArtifactBuffer, SideChannelReceiver
from ganglia.telemetry.base import SpanKind
from ganglia.telemetry.mock import MockTelemetryProvider
from tests.conftest import FakeClock


class RecordingSend:
    def __init__(self, *, fail: bool = False) -> None:
        self.packets: list[bytes] = []
        self.fail = fail

    async def __call__(self, payload: bytes) -> None:
        if self.fail:
            raise ConnectionError("data channel closed")
        self.packets.append(payload)

    def decoded(self) -> list[dict[str, Any]]:
        return [json.loads(p) for p in self.packets]


# ---------------------------------------------------------------------------
# Events
# ---------------------------------------------------------------------------


class TestEventParsing:
    def test_status(self) -> None:
        event = parse_side_channel_event(b'{"type":"status","action":"reading_file","detail":"a.py"}')
        assert isinstance(event, StatusEvent)
        assert event.action == StatusAction.READING_FILE
        assert event.detail == "a.py"

    def test_artifact_discriminated_by_artifact_type(self) -> None:
        event = parse_side_channel_event(
            {"type": "artifact", "artifact_type": "diff", "file": "a.py", "diff": "@@"}
        )
        assert isinstance(event, DiffArtifact)
        assert event.artifact_type == ArtifactType.DIFF
        assert event.to_wire()["artifact_type"] == "diff"

    def test_every_artifact_type_has_a_model(self) -> None:
        models = get_args(get_args(Artifact)[0])
        defaults = {model.model_fields["artifact_type"].default for model in models}
        assert defaults == set(ArtifactType)

    def test_code_artifact_uses_camel_case_start_line(self) -> None:
        event = parse_side_channel_event(
            {"type": "artifact", "artifact_type": "code", "content": "x = 1", "startLine": 12}
        )
        assert isinstance(event, CodeArtifact)
        assert event.start_line == 12
        assert event.to_wire()["startLine"] == 12

    def test_search_results(self) -> None:
        event = parse_side_channel_event(
            {
                "type": "artifact",
                "artifact_type": "search_results",
                "query": "foo",
                "results": [{"file": "a.py", "line": 3, "content": "foo()"}],
            }
        )
        assert isinstance(event, SearchResultsArtifact)
        assert event.results[0].line == 3

    def test_image_and_metrics(self) -> None:
        image = parse_side_channel_event(
            {"type": "artifact", "artifact_type": "image", "url": "https://x/y.png"}
        )
        assert isinstance(image, ImageArtifact)
        metrics = parse_side_channel_event({"type": "metrics", "metrics": {"total_ms": 812.5}})
        assert isinstance(metrics, MetricsEvent)

    def test_chunk_envelope(self) -> None:
        wire = encode_chunks(b"{}", transfer_id="t")[0].to_bytes()
        assert isinstance(parse_side_channel_event(wire), ChunkEnvelope)

    def test_unknown_type_rejected(self) -> None:
        with pytest.raises(ValueError, match="unknown side-channel event type"):
            parse_side_channel_event({"type": "telemetry"})

    def test_unknown_artifact_type_rejected(self) -> None:
        with pytest.raises(ValidationError):
            parse_side_channel_event({"type": "artifact", "artifact_type": "video"})

    def test_non_object_rejected(self) -> None:
        with pytest.raises(ValueError):
            parse_side_channel_event(b"[1, 2]")

    def test_wire_omits_unset_fields(self) -> None:
        assert StatusEvent(action=StatusAction.THINKING).to_wire() == {
            "type": "status",
            "action": "thinking",
        }


class TestStatusFromToolCall:
    def test_known_tool(self) -> None:
        event = status_from_tool_call("Read", {"file_path": "src/app.py"})
        assert event.action == StatusAction.READING_FILE
        assert event.detail == "src/app.py"
        assert event.started_at is not None

    def test_search_detail_from_pattern(self) -> None:
        event = status_from_tool_call("grep", {"pattern": "TODO"})
        assert event.action == StatusAction.SEARCHING_FILES
        assert event.detail == "TODO"

    def test_unknown_tool_reads_as_thinking(self) -> None:
        event = status_from_tool_call("calendar_lookup", {})
        assert event.action == StatusAction.THINKING
        assert event.detail is None


# ---------------------------------------------------------------------------
# Publisher
# ---------------------------------------------------------------------------


class TestPublisher:
    async def test_small_event_sent_whole(self) -> None:
        send = RecordingSend()
        publisher = SideChannelPublisher(send)
        assert await publisher.publish(StatusEvent(action=StatusAction.THINKING))
        assert send.decoded() == [{"type": "status", "action": "thinking"}]

    async def test_large_event_is_chunked_and_reassembles(self) -> None:
        send = RecordingSend()
        publisher = SideChannelPublisher(send, max_chunk_size=64)
        artifact = CodeArtifact(content="print('hello')\n" * 40, language="python")

        assert await publisher.publish(artifact)
        assert len(send.packets) > 1
        assert all(p["type"] == "chunk" for p in send.decoded())

        receiver = SideChannelReceiver()
        results = [await receiver.handle_data(p) for p in send.packets]
        assert results[:-1] == [None] * (len(results) - 1)
        assert results[-1] == artifact

    async def test_status_debounce(self, clock: FakeClock) -> None:
        send = RecordingSend()
        publisher = SideChannelPublisher(send, status_debounce=0.5, clock=clock)

        assert await publisher.publish(StatusEvent(action=StatusAction.THINKING))
        clock.tick(0.2)
        assert not await publisher.publish(StatusEvent(action=StatusAction.THINKING))
        assert await publisher.publish(StatusEvent(action=StatusAction.READING_FILE))
        clock.tick(0.6)
        assert await publisher.publish(StatusEvent(action=StatusAction.READING_FILE))
        assert [p["action"] for p in send.decoded()] == ["thinking", "reading_file", "reading_file"]

    async def test_send_failure_is_logged_not_raised(
        self, caplog: pytest.LogCaptureFixture
    ) -> None:
        telemetry = MockTelemetryProvider()
        publisher = SideChannelPublisher(RecordingSend(fail=True), telemetry=telemetry)
        with caplog.at_level(logging.WARNING, logger="ganglia.sidechannel"):
            assert not await publisher.publish(MetricsEvent(metrics={"total_ms": 1.0}))
        assert "Failed to publish metrics event" in caplog.text
        spans = telemetry.get_spans(SpanKind.SIDECHANNEL_PUBLISH)
        assert spans[0].status == "error"

    async def test_raw_dict_validated(self, caplog: pytest.LogCaptureFixture) -> None:
        send = RecordingSend()
        publisher = SideChannelPublisher(send)
        assert await publisher.publish({"type": "status", "action": "web_search"})
        with caplog.at_level(logging.WARNING, logger="ganglia.sidechannel"):
            assert not await publisher.publish({"type": "status", "action": "dancing"})
        assert len(send.packets) == 1
        assert "Dropping malformed side-channel event" in caplog.text


# ---------------------------------------------------------------------------
# Receiver
# ---------------------------------------------------------------------------


class TestArtifactBuffer:
    def test_evicts_oldest_first(self) -> None:
        buffer = ArtifactBuffer(max_size=2)
        for i in range(3):
            buffer.add(CodeArtifact(content=str(i)))
        assert [a.content for a in buffer] == ["1", "2"]  # type: ignore[union-attr]
        assert buffer.latest.content == "2"  # type: ignore[union-attr]

    def test_default_size(self) -> None:
        assert ArtifactBuffer().max_size == 20

    def test_rejects_zero(self) -> None:
        with pytest.raises(ValueError):
            ArtifactBuffer(max_size=0)


class TestReceiver:
    async def test_dispatches_by_type(self) -> None:
        receiver = SideChannelReceiver()
        statuses: list[StatusEvent] = []
        metrics: list[MetricsEvent] = []
        receiver.on_status(statuses.append)

        async def on_metrics(event: MetricsEvent) -> None:
            metrics.append(event)

        receiver.on_metrics(on_metrics)
        await receiver.handle_data(b'{"type":"status","action":"analyzing"}')
        await receiver.handle_data(b'{"type":"metrics","metrics":{"total_ms":5}}')
        await receiver.handle_data(
            b'{"type":"artifact","artifact_type":"markdown","content":"# Notes"}'
        )

        assert [s.action for s in statuses] == [StatusAction.ANALYZING]
        assert receiver.last_status is statuses[0]
        assert len(metrics) == 1
        assert len(receiver.artifacts) == 1

    async def test_malformed_packet_dropped(self, caplog: pytest.LogCaptureFixture) -> None:
        receiver = SideChannelReceiver()
        with caplog.at_level(logging.WARNING, logger="ganglia.sidechannel"):
            assert await receiver.handle_data(b"{not json") is None
        assert "Dropping malformed side-channel packet" in caplog.text

    async def test_handler_failure_does_not_escape(
        self, caplog: pytest.LogCaptureFixture
    ) -> None:
        receiver = SideChannelReceiver()

        def broken(event: Any) -> None:
            raise RuntimeError("ui crashed")

        receiver.on_status(broken)
        with caplog.at_level(logging.ERROR, logger="ganglia.sidechannel"):
            event = await receiver.handle_data(b'{"type":"status","action":"thinking"}')
        assert isinstance(event, StatusEvent)
        assert "Side-channel handler failed" in caplog.text

    async def test_undecodable_reassembled_payload(self) -> None:
        receiver = SideChannelReceiver()
        envelope = encode_chunks(b"not json at all", transfer_id="t")[0]
        assert await receiver.handle_data(envelope.to_bytes()) is None
        assert receiver.reassembler.pending_transfers == 0
