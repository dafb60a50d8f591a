"""Base classes, protocols, and types for the stream codec facade.

This module defines the codec identifier, the error taxonomy, runtime
configuration and the structural protocols that wrapped codec engines
must satisfy. Engines are treated as black boxes: anything exposing the
incremental ``compress``/``flush`` or ``decompress`` shape can be wrapped.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from enum import Enum
from typing import Any, Protocol, runtime_checkable


# =============================================================================
# Exceptions
# =============================================================================


class CompressionError(Exception):
    """Base exception for codec stream errors."""

    def __init__(self, message: str, algorithm: str | None = None) -> None:
        self.algorithm = algorithm
        super().__init__(f"[{algorithm}] {message}" if algorithm else message)


class CompressionConfigError(CompressionError):
    """Invalid configuration, raised before any bytes are moved."""

    pass


class UnsupportedAlgorithmError(CompressionConfigError):
    """Requested codec is unknown or its engine library is not installed."""

    def __init__(self, algorithm: str, available: list[str] | None = None) -> None:
        self.available = available or []
        msg = f"Algorithm '{algorithm}' is not supported"
        if self.available:
            msg += f". Available: {', '.join(self.available)}"
        super().__init__(msg, algorithm)


class ParameterDecodeError(CompressionConfigError):
    """A ``%%:`` escaped parameter value could not be percent-decoded."""

    def __init__(self, key: str, value: str) -> None:
        self.key = key
        self.value = value
        super().__init__(f"Parameter '{key}' has a malformed escaped value: {value!r}")


class CodecInitError(CompressionError):
    """The underlying engine rejected its settings."""

    pass


class CompressionStreamError(CompressionError, OSError):
    """Engine failure while a stream is in use.

    Subclasses :class:`OSError` so callers can treat it like any other
    failure of the wrapped sink or source.
    """

    pass


class DecompressionError(CompressionStreamError):
    """Corrupt or truncated compressed input."""

    pass


# =============================================================================
# Enums
# =============================================================================


class CompressionAlgorithm(str, Enum):
    """Supported codec identifiers."""

    NONE = "none"
    ZSTD = "zstd"
    SNAPPY = "snappy"
    GZIP = "gzip"
    ZLIB = "zlib"
    DEFLATE = "deflate"
    BZIP2 = "bzip2"
    LZ4 = "lz4"
    XZ = "xz"
    LZO = "lzo"

    @classmethod
    def from_name(cls, name: "str | CompressionAlgorithm") -> "CompressionAlgorithm":
        """Resolve a free-form codec name, ignoring case and accepting aliases.

        Raises:
            UnsupportedAlgorithmError: If the name is not recognized.
        """
        if isinstance(name, cls):
            return name
        key = str(name).strip().lower()
        algorithm = _ALIASES.get(key)
        if algorithm is None:
            raise UnsupportedAlgorithmError(str(name), sorted(_ALIASES))
        return algorithm

    @classmethod
    def from_extension(cls, ext: str) -> "CompressionAlgorithm":
        """Get algorithm from file extension."""
        ext_map = {
            ".gz": cls.GZIP,
            ".gzip": cls.GZIP,
            ".zst": cls.ZSTD,
            ".zstd": cls.ZSTD,
            ".sz": cls.SNAPPY,
            ".snappy": cls.SNAPPY,
            ".zz": cls.ZLIB,
            ".zlib": cls.ZLIB,
            ".deflate": cls.DEFLATE,
            ".bz2": cls.BZIP2,
            ".lz4": cls.LZ4,
            ".xz": cls.XZ,
            ".lzo": cls.LZO,
        }
        return ext_map.get(ext.lower(), cls.NONE)

    @property
    def extension(self) -> str:
        """Get file extension for this algorithm."""
        ext_map = {
            self.NONE: "",
            self.ZSTD: ".zst",
            self.SNAPPY: ".sz",
            self.GZIP: ".gz",
            self.ZLIB: ".zz",
            self.DEFLATE: ".deflate",
            self.BZIP2: ".bz2",
            self.LZ4: ".lz4",
            self.XZ: ".xz",
            self.LZO: ".lzo",
        }
        return ext_map.get(self, "")

    @property
    def aliases(self) -> list[str]:
        """All names that resolve to this algorithm."""
        return sorted(name for name, algo in _ALIASES.items() if algo is self)


_ALIASES: dict[str, CompressionAlgorithm] = {
    "none": CompressionAlgorithm.NONE,
    "identity": CompressionAlgorithm.NONE,
    "raw": CompressionAlgorithm.NONE,
    "zstd": CompressionAlgorithm.ZSTD,
    "zst": CompressionAlgorithm.ZSTD,
    "zstandard": CompressionAlgorithm.ZSTD,
    "snappy": CompressionAlgorithm.SNAPPY,
    "sz": CompressionAlgorithm.SNAPPY,
    "gzip": CompressionAlgorithm.GZIP,
    "gz": CompressionAlgorithm.GZIP,
    "zlib": CompressionAlgorithm.ZLIB,
    "deflate": CompressionAlgorithm.DEFLATE,
    "bzip2": CompressionAlgorithm.BZIP2,
    "bz2": CompressionAlgorithm.BZIP2,
    "lz4": CompressionAlgorithm.LZ4,
    "xz": CompressionAlgorithm.XZ,
    "lzo": CompressionAlgorithm.LZO,
}


# =============================================================================
# Data Classes
# =============================================================================


@dataclass
class StreamConfig:
    """Runtime configuration shared by all stream adapters.

    Attributes:
        chunk_size: Number of compressed bytes pulled from a source per read.
        lzo_buffer_size: Initial LZO scratch buffer capacity.
        lzo_max_buffer_size: Ceiling for LZO scratch buffer growth.
        close_underlying: Close the wrapped sink/source when the adapter closes.
    """

    chunk_size: int = 64 * 1024  # 64KB
    lzo_buffer_size: int = 8192
    lzo_max_buffer_size: int = 64 * 1024 * 1024
    close_underlying: bool = False

    def validate(self) -> None:
        """Validate configuration."""
        if self.chunk_size <= 0:
            raise CompressionConfigError("chunk_size must be positive")
        if self.lzo_buffer_size <= 0:
            raise CompressionConfigError("lzo_buffer_size must be positive")
        if self.lzo_max_buffer_size < self.lzo_buffer_size:
            raise CompressionConfigError(
                "lzo_max_buffer_size must not be smaller than lzo_buffer_size"
            )

    @classmethod
    def from_env(cls, prefix: str = "CODECSTREAM_") -> "StreamConfig":
        """Create configuration from environment variables.

        Environment variables:
            CODECSTREAM_CHUNK_SIZE: Read chunk size in bytes (default: 65536)
            CODECSTREAM_LZO_BUFFER_SIZE: Initial LZO scratch size (default: 8192)
            CODECSTREAM_LZO_MAX_BUFFER_SIZE: LZO scratch ceiling (default: 64 MiB)
            CODECSTREAM_CLOSE_UNDERLYING: Close wrapped streams (default: false)
        """

        def get_bool(key: str, default: bool = False) -> bool:
            value = os.environ.get(prefix + key, "").lower()
            if value in ("true", "1", "yes", "on"):
                return True
            if value in ("false", "0", "no", "off"):
                return False
            return default

        def get_int(key: str, default: int) -> int:
            try:
                return int(os.environ.get(prefix + key, default))
            except ValueError:
                return default

        defaults = cls()
        return cls(
            chunk_size=get_int("CHUNK_SIZE", defaults.chunk_size),
            lzo_buffer_size=get_int("LZO_BUFFER_SIZE", defaults.lzo_buffer_size),
            lzo_max_buffer_size=get_int(
                "LZO_MAX_BUFFER_SIZE", defaults.lzo_max_buffer_size
            ),
            close_underlying=get_bool("CLOSE_UNDERLYING", defaults.close_underlying),
        )


@dataclass
class StreamingMetrics:
    """Byte accounting for a single adapter.

    Attributes:
        bytes_in: Bytes handed to the adapter (uncompressed on write,
            compressed on read).
        bytes_out: Bytes produced by the adapter.
        chunks_processed: Number of write calls or source reads.
        compression_ratio: Ratio of uncompressed to compressed size.
        start_time: Adapter construction time.
        end_time: Finalization time.
        errors: Number of engine errors encountered.
    """

    bytes_in: int = 0
    bytes_out: int = 0
    chunks_processed: int = 0
    compression_ratio: float = 0.0
    start_time: float = 0.0
    end_time: float = 0.0
    errors: int = 0

    def update_ratio(self, compressing: bool = True) -> None:
        """Update compression ratio."""
        raw, packed = (
            (self.bytes_in, self.bytes_out) if compressing else (self.bytes_out, self.bytes_in)
        )
        if packed > 0:
            self.compression_ratio = raw / packed

    @property
    def duration_ms(self) -> float:
        """Get duration in milliseconds."""
        if self.end_time > self.start_time:
            return (self.end_time - self.start_time) * 1000
        return 0.0

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "bytes_in": self.bytes_in,
            "bytes_out": self.bytes_out,
            "chunks_processed": self.chunks_processed,
            "compression_ratio": round(self.compression_ratio, 2),
            "duration_ms": round(self.duration_ms, 2),
            "errors": self.errors,
        }


# =============================================================================
# Protocols
# =============================================================================


@runtime_checkable
class CompressorEngine(Protocol):
    """Incremental compression engine."""

    def compress(self, data: bytes) -> bytes:
        """Compress a chunk, returning whatever output is ready."""
        ...

    def sync(self) -> bytes:
        """Emit buffered output without ending the stream."""
        ...

    def finish(self) -> bytes:
        """End the stream, returning trailers and checksums."""
        ...


@runtime_checkable
class DecompressorEngine(Protocol):
    """Incremental decompression engine with bounded output.

    Mirrors the standard library's ``BZ2Decompressor`` contract, plus
    :meth:`finish` for the end of input.
    """

    eof: bool
    needs_input: bool
    unused_data: bytes

    def decompress(self, data: bytes, max_length: int = -1) -> bytes:
        """Decompress a chunk, returning at most ``max_length`` bytes."""
        ...

    def finish(self) -> bytes:
        """Validate that the input ended at a stream boundary."""
        ...
