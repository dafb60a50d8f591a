"""Public entry points."""

from __future__ import annotations

import io
import logging
from dataclasses import replace
from typing import BinaryIO

from codecstream.base import CompressionAlgorithm, StreamConfig
from codecstream.params import ParameterSet, ParameterSetLike
from codecstream.providers import build_reader, build_writer
from codecstream.streaming import StreamReader, StreamWriter

logger = logging.getLogger(__name__)


def compressed_writer(
    sink: BinaryIO,
    codec: str | CompressionAlgorithm,
    params: ParameterSetLike = "",
    *,
    config: StreamConfig | None = None,
) -> StreamWriter:
    """Wrap a raw binary sink so that bytes written to it are compressed.

    Args:
        sink: Writable binary stream receiving compressed bytes.
        codec: Codec name (any case, aliases accepted) or enum member.
        params: Parameter string such as ``"level=3"``, a mapping, or a
            :class:`ParameterSet`.
        config: Stream configuration.

    Returns:
        A writable stream. Close it (or use it as a context manager) to
        write the codec's trailer; an unclosed writer is finalized when it
        is garbage collected.

    Raises:
        CompressionConfigError: Unknown codec or malformed parameters.
        CodecInitError: The engine rejected its settings.

    Example:
        >>> import io
        >>> sink = io.BytesIO()
        >>> with compressed_writer(sink, "gz", "level=9") as out:
        ...     out.write(b"hello world")
        11
    """
    param_set = ParameterSet.from_value(params)
    return build_writer(sink, codec, param_set, config)


def decompressed_reader(
    source: BinaryIO,
    codec: str | CompressionAlgorithm,
    *,
    config: StreamConfig | None = None,
) -> StreamReader:
    """Wrap a raw binary source so that bytes read from it are decompressed.

    Decoding takes no parameters; each codec's stream header describes
    itself.

    Raises:
        CompressionConfigError: Unknown codec.
    """
    return build_reader(source, codec, config)


def compress(
    data: bytes,
    codec: str | CompressionAlgorithm,
    params: ParameterSetLike = "",
    *,
    config: StreamConfig | None = None,
) -> bytes:
    """Compress ``data`` in one call."""
    if config is not None:
        config = replace(config, close_underlying=False)
    sink = io.BytesIO()
    with compressed_writer(sink, codec, params, config=config) as writer:
        writer.write(data)
    result = sink.getvalue()
    logger.debug("Compressed %d bytes to %d bytes", len(data), len(result))
    return result


def decompress(
    data: bytes,
    codec: str | CompressionAlgorithm,
    *,
    config: StreamConfig | None = None,
) -> bytes:
    """Decompress ``data`` in one call."""
    with decompressed_reader(io.BytesIO(data), codec, config=config) as reader:
        return reader.read()
