"""Chunked transfer of side-channel payloads over size-limited data packets."""

from __future__ import annotations

import base64
import binascii
import logging
import time
import uuid
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from ganglia.errors import TransferProtocolError
from ganglia.sidechannel.events import ChunkEnvelope

logger = logging.getLogger("ganglia.sidechannel")

# Reliable data packets are capped at 15 KiB; leave room for the envelope.
MAX_CHUNK_SIZE = 14 * 1024

DEFAULT_IDLE_TIMEOUT = 30.0


def encode_chunks(
    payload: bytes,
    *,
    transfer_id: str | None = None,
    max_chunk_size: int = MAX_CHUNK_SIZE,
) -> list[ChunkEnvelope]:
    """Split *payload* into base64 chunk envelopes sharing one transfer id."""
    if max_chunk_size <= 0:
        raise ValueError("max_chunk_size must be positive")
    transfer_id = transfer_id or uuid.uuid4().hex
    pieces = [payload[i : i + max_chunk_size] for i in range(0, len(payload), max_chunk_size)]
    if not pieces:
        pieces = [b""]
    total = len(pieces)
    return [
        ChunkEnvelope(
            transfer_id=transfer_id,
            chunk_index=index,
            total_chunks=total,
            data=base64.b64encode(piece).decode("ascii"),
        )
        for index, piece in enumerate(pieces)
    ]


@dataclass(frozen=True)
class CompletedPayload:
    """A fully reassembled transfer."""

    transfer_id: str
    data: bytes
    total_chunks: int

    def text(self) -> str:
        return self.data.decode("utf-8")


@dataclass
class _Transfer:
    total_chunks: int
    last_activity: float
    slots: list[bytes | None] = field(default_factory=list)
    filled: set[int] = field(default_factory=set)

    def __post_init__(self) -> None:
        if not self.slots:
            self.slots = [None] * self.total_chunks


class ChunkReassembler:
    """Rebuilds payloads from chunks arriving in any order.

    Each transfer is keyed by its id.  The first chunk seen fixes
    ``total_chunks``; when every index is present the slots are joined in
    index order, returned once, and the record is deleted.  Duplicate
    indices overwrite the earlier slot.  Inconsistent or undecodable
    chunks drop only their own transfer, and transfers idle for longer
    than *idle_timeout* seconds are dropped without ever being
    dispatched.

    Args:
        idle_timeout: Seconds without a chunk before a transfer is evicted.
        clock: Monotonic clock, injectable for tests.
    """

    def __init__(
        self,
        *,
        idle_timeout: float = DEFAULT_IDLE_TIMEOUT,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._transfers: dict[str, _Transfer] = {}
        self._idle_timeout = idle_timeout
        self._clock = clock
        self.dropped = 0

    @property
    def pending_transfers(self) -> int:
        return len(self._transfers)

    def is_pending(self, transfer_id: str) -> bool:
        return transfer_id in self._transfers

    def accept(
        self,
        transfer_id: str,
        chunk_index: int,
        total_chunks: int,
        data: str | bytes,
    ) -> CompletedPayload | None:
        """Store one chunk; return the payload when the transfer completes.

        *data* is the base64 text carried in the envelope.
        """
        now = self._clock()
        self.evict_idle(now)
        try:
            return self._accept(transfer_id, chunk_index, total_chunks, data, now)
        except TransferProtocolError as exc:
            self._drop(transfer_id)
            logger.warning("Dropping transfer %s: %s", transfer_id, exc)
            return None

    def accept_envelope(self, envelope: ChunkEnvelope) -> CompletedPayload | None:
        return self.accept(
            envelope.transfer_id, envelope.chunk_index, envelope.total_chunks, envelope.data
        )

    def _accept(
        self,
        transfer_id: str,
        chunk_index: int,
        total_chunks: int,
        data: str | bytes,
        now: float,
    ) -> CompletedPayload | None:
        if total_chunks < 1:
            raise TransferProtocolError(
                f"total_chunks must be >= 1, got {total_chunks}", transfer_id=transfer_id
            )

        transfer = self._transfers.get(transfer_id)
        if transfer is not None and transfer.total_chunks != total_chunks:
            raise TransferProtocolError(
                f"total_chunks changed from {transfer.total_chunks} to {total_chunks}",
                transfer_id=transfer_id,
            )
        if not 0 <= chunk_index < total_chunks:
            raise TransferProtocolError(
                f"chunk_index {chunk_index} outside [0, {total_chunks})",
                transfer_id=transfer_id,
            )

        try:
            piece = base64.b64decode(data, validate=True)
        except (binascii.Error, ValueError) as exc:
            raise TransferProtocolError(
                f"chunk {chunk_index} is not valid base64", transfer_id=transfer_id
            ) from exc

        if transfer is None:
            transfer = _Transfer(total_chunks=total_chunks, last_activity=now)
            self._transfers[transfer_id] = transfer
        transfer.slots[chunk_index] = piece
        transfer.filled.add(chunk_index)
        transfer.last_activity = now

        if len(transfer.filled) < transfer.total_chunks:
            return None

        del self._transfers[transfer_id]
        joined = b"".join(slot or b"" for slot in transfer.slots)
        logger.debug("Reassembled transfer %s (%d chunks)", transfer_id, total_chunks)
        return CompletedPayload(transfer_id=transfer_id, data=joined, total_chunks=total_chunks)

    def evict_idle(self, now: float | None = None) -> list[str]:
        """Drop transfers idle longer than the timeout. Returns their ids."""
        if now is None:
            now = self._clock()
        stale = [
            tid
            for tid, transfer in self._transfers.items()
            if now - transfer.last_activity > self._idle_timeout
        ]
        for tid in stale:
            transfer = self._transfers[tid]
            logger.warning(
                "Evicting idle transfer %s (%d/%d chunks received)",
                tid,
                len(transfer.filled),
                transfer.total_chunks,
            )
            self._drop(tid)
        return stale

    def _drop(self, transfer_id: str) -> None:
        if self._transfers.pop(transfer_id, None) is not None:
            self.dropped += 1

    def clear(self) -> None:
        self._transfers.clear()

    def stats(self) -> dict[str, Any]:
        return {"pending": len(self._transfers), "dropped": self.dropped}
