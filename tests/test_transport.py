"""Tests for the disconnect taxonomy."""

from __future__ import annotations

import pytest

from ganglia.voice.transport import DisconnectReason, disconnect_message, should_reconnect


class TestShouldReconnect:
    @pytest.mark.parametrize(
        "reason",
        [
            DisconnectReason.UNKNOWN,
            DisconnectReason.DISCONNECTED,
            DisconnectReason.SIGNALING_CONNECTION_FAILURE,
            DisconnectReason.RECONNECT_ATTEMPTS_EXCEEDED,
        ],
    )
    def test_network_drops_reconnect(self, reason: DisconnectReason) -> None:
        assert should_reconnect(reason)

    @pytest.mark.parametrize(
        "reason",
        [
            DisconnectReason.CLIENT_INITIATED,
            DisconnectReason.DUPLICATE_IDENTITY,
            DisconnectReason.SERVER_SHUTDOWN,
            DisconnectReason.PARTICIPANT_REMOVED,
            DisconnectReason.ROOM_DELETED,
            DisconnectReason.STATE_MISMATCH,
            DisconnectReason.JOIN_FAILURE,
        ],
    )
    def test_deliberate_ends_do_not(self, reason: DisconnectReason) -> None:
        assert not should_reconnect(reason)


class TestDisconnectMessage:
    def test_specific_messages(self) -> None:
        assert disconnect_message(DisconnectReason.ROOM_DELETED) == "Room no longer exists"
        assert (
            disconnect_message(DisconnectReason.DUPLICATE_IDENTITY)
            == "Another session took over this connection"
        )

    def test_transient_reads_as_lost_connection(self) -> None:
        assert disconnect_message(DisconnectReason.SIGNALING_CONNECTION_FAILURE) == "Connection lost"
        assert disconnect_message(DisconnectReason.UNKNOWN) == "Connection lost"

    def test_every_reason_has_a_message(self) -> None:
        for reason in DisconnectReason:
            assert disconnect_message(reason)
