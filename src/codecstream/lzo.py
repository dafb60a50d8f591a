"""LZO block engine.

The LZO engine compresses one input buffer at a time into a scratch buffer
owned by the caller and reports one of a fixed set of outcomes instead of
raising. The stream adapter in :mod:`codecstream.streaming` reacts to each
outcome; see :class:`codecstream.streaming.LzoStreamWriter`.

Block layout written by :class:`PyLzoEngine`::

    u32be raw_length | u32be stored_length | payload

``stored_length == raw_length`` marks a stored block whose payload is the
original bytes. For such blocks the engine emits only the 8-byte
descriptor and the adapter forwards the input verbatim after it.
"""

from __future__ import annotations

import importlib
import struct
from dataclasses import dataclass
from enum import Enum, auto
from typing import Any, Protocol, runtime_checkable

from codecstream.base import DecompressionError, UnsupportedAlgorithmError

BLOCK_HEADER = struct.Struct(">II")


class LzoStatus(Enum):
    """Outcome of a single engine call."""

    OK = auto()
    NOT_COMPRESSIBLE = auto()
    OUTPUT_OVERRUN = auto()
    ERROR = auto()


@dataclass(frozen=True)
class LzoResult:
    """Tagged engine result.

    Attributes:
        status: Outcome of the call.
        length: Number of bytes of the scratch buffer the engine filled.
        message: Engine diagnostic for ``ERROR`` results.
    """

    status: LzoStatus
    length: int = 0
    message: str = ""


@runtime_checkable
class LzoEngine(Protocol):
    """Engine compressing into a caller-supplied, fixed-capacity buffer."""

    def compress(self, data: bytes, out: bytearray) -> LzoResult:
        """Compress ``data`` into ``out`` without growing it."""
        ...


def _load_lzo() -> Any:
    try:
        return importlib.import_module("lzo")
    except ImportError:
        raise UnsupportedAlgorithmError("lzo")


class PyLzoEngine:
    """:class:`LzoEngine` backed by python-lzo.

    Args:
        level: 1 selects lzo1x_1, any other value lzo1x_999.
        lzo_module: Already imported ``lzo`` module.
    """

    def __init__(self, level: int = 1, lzo_module: Any | None = None) -> None:
        self._lzo = lzo_module or _load_lzo()
        self.level = level

    def compress(self, data: bytes, out: bytearray) -> LzoResult:
        if BLOCK_HEADER.size > len(out):
            return LzoResult(LzoStatus.OUTPUT_OVERRUN)
        try:
            packed = self._lzo.compress(data, self.level, False)
        except self._lzo.error as e:
            return LzoResult(LzoStatus.ERROR, message=str(e))
        if len(packed) >= len(data):
            BLOCK_HEADER.pack_into(out, 0, len(data), len(data))
            return LzoResult(LzoStatus.NOT_COMPRESSIBLE, BLOCK_HEADER.size)
        end = BLOCK_HEADER.size + len(packed)
        if end > len(out):
            return LzoResult(LzoStatus.OUTPUT_OVERRUN)
        BLOCK_HEADER.pack_into(out, 0, len(data), len(packed))
        out[BLOCK_HEADER.size:end] = packed
        return LzoResult(LzoStatus.OK, end)


class LzoBlockDecoder:
    """Incremental decoder for the block layout above.

    The stream has no end marker: input that ends on a block boundary is
    complete, anything else is reported by :meth:`flush`.
    """

    def __init__(self, lzo_module: Any | None = None) -> None:
        self._lzo = lzo_module
        self._buffer = bytearray()

    def decompress(self, data: bytes) -> bytes:
        self._buffer += data
        out = bytearray()
        while len(self._buffer) >= BLOCK_HEADER.size:
            raw_length, stored_length = BLOCK_HEADER.unpack_from(self._buffer)
            end = BLOCK_HEADER.size + stored_length
            if len(self._buffer) < end:
                break
            payload = bytes(self._buffer[BLOCK_HEADER.size:end])
            del self._buffer[:end]
            if stored_length == raw_length:
                out += payload
            elif stored_length > raw_length:
                raise DecompressionError(
                    f"Block claims {stored_length} stored bytes for {raw_length} raw bytes",
                    "lzo",
                )
            else:
                out += self._decode_block(payload, raw_length)
        return bytes(out)

    def flush(self) -> bytes:
        if self._buffer:
            raise DecompressionError(
                f"Stream ended inside a block ({len(self._buffer)} bytes left over)",
                "lzo",
            )
        return b""

    def _decode_block(self, payload: bytes, raw_length: int) -> bytes:
        if self._lzo is None:
            self._lzo = _load_lzo()
        block = self._lzo.decompress(payload, False, raw_length)
        if len(block) != raw_length:
            raise DecompressionError(
                f"Block decoded to {len(block)} bytes, expected {raw_length}", "lzo"
            )
        return block
