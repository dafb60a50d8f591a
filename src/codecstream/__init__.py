"""Unified streaming compression and decompression.

This package wraps a byte stream in a transparent adapter that compresses
on write or decompresses on read. Codecs are chosen by name and configured
through a small parameter string, so every codec is driven the same way.

Features:
    - Codecs: zstd, snappy, gzip, zlib, deflate, bzip2, lz4, xz, lzo and none
    - Case-insensitive codec names with aliases ("gz", "zst", "bz2", ...)
    - ``key=value;key=value`` parameter strings with percent-encoded values
    - Writers that always finalize their trailer exactly once

Example:
    >>> import io
    >>> from codecstream import compressed_writer, decompressed_reader
    >>>
    >>> sink = io.BytesIO()
    >>> with compressed_writer(sink, "zstd", "level=1") as out:
    ...     out.write(b"hello, world")
    12
    >>> reader = decompressed_reader(io.BytesIO(sink.getvalue()), "zstd")
    >>> reader.read()
    b'hello, world'
"""

from codecstream.api import compress, compressed_writer, decompress, decompressed_reader
from codecstream.base import (
    # Enums
    CompressionAlgorithm,
    # Data classes
    StreamConfig,
    StreamingMetrics,
    # Protocols
    CompressorEngine,
    DecompressorEngine,
    # Exceptions
    CompressionError,
    CompressionConfigError,
    UnsupportedAlgorithmError,
    ParameterDecodeError,
    CodecInitError,
    CompressionStreamError,
    DecompressionError,
)
from codecstream.lzo import LzoEngine, LzoResult, LzoStatus, PyLzoEngine
from codecstream.params import ParameterSet
from codecstream.providers import (
    BaseCodec,
    CodecDescriptor,
    ParameterSpec,
    build_reader,
    build_writer,
    describe_codecs,
    get_codec,
    is_algorithm_available,
    list_available_algorithms,
    register_codec,
)
from codecstream.streaming import (
    CompressingWriter,
    CompressObjEngine,
    DecompressObjEngine,
    DecompressingReader,
    LZ4StreamWriter,
    LzoStreamWriter,
    OutputLimit,
    PassthroughReader,
    PassthroughWriter,
    StreamReader,
    StreamWriter,
)

# Version: Single source of truth from pyproject.toml
try:
    from importlib.metadata import version, PackageNotFoundError

    __version__ = version("codecstream")
except PackageNotFoundError:
    # Package not installed (development mode)
    __version__ = "0.0.0.dev"

__all__ = [
    # Facade
    "compressed_writer",
    "decompressed_reader",
    "compress",
    "decompress",
    # Enums
    "CompressionAlgorithm",
    "LzoStatus",
    # Data classes
    "StreamConfig",
    "StreamingMetrics",
    "ParameterSet",
    "ParameterSpec",
    "CodecDescriptor",
    "LzoResult",
    # Protocols
    "CompressorEngine",
    "DecompressorEngine",
    "LzoEngine",
    # Exceptions
    "CompressionError",
    "CompressionConfigError",
    "UnsupportedAlgorithmError",
    "ParameterDecodeError",
    "CodecInitError",
    "CompressionStreamError",
    "DecompressionError",
    # Registry
    "BaseCodec",
    "build_writer",
    "build_reader",
    "get_codec",
    "register_codec",
    "describe_codecs",
    "list_available_algorithms",
    "is_algorithm_available",
    # Adapters
    "StreamWriter",
    "StreamReader",
    "CompressingWriter",
    "CompressObjEngine",
    "DecompressObjEngine",
    "OutputLimit",
    "DecompressingReader",
    "LZ4StreamWriter",
    "LzoStreamWriter",
    "PassthroughWriter",
    "PassthroughReader",
    "PyLzoEngine",
]
