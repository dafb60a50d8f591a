"""Stream adapters that compress on write and decompress on read.

Every adapter is an :class:`io.RawIOBase` wrapping a raw sink or source
together with a codec engine. Writers finalize their engine exactly once,
either on :meth:`close` (explicitly or through ``with``) or when the
adapter is garbage collected without having been closed.

Example:
    >>> import io, zlib
    >>> sink = io.BytesIO()
    >>> engine = CompressObjEngine(zlib.compressobj(3), sync_mode=zlib.Z_SYNC_FLUSH)
    >>> with CompressingWriter(sink, engine, CompressionAlgorithm.ZLIB) as writer:
    ...     writer.write(b"hello")
    5
    >>> zlib.decompress(sink.getvalue())
    b'hello'
"""

from __future__ import annotations

import errno
import io
import logging
import time
from abc import abstractmethod
from enum import Enum, auto
from typing import Any, BinaryIO, Callable

from codecstream.base import (
    CompressionAlgorithm,
    CompressionError,
    CompressionStreamError,
    CodecInitError,
    CompressorEngine,
    DecompressionError,
    DecompressorEngine,
    StreamConfig,
    StreamingMetrics,
)
from codecstream.lzo import LzoEngine, LzoStatus

logger = logging.getLogger(__name__)


# =============================================================================
# Engine Adapters
# =============================================================================


class CompressObjEngine:
    """Adapts a ``compressobj``-style object to :class:`CompressorEngine`.

    Args:
        compressobj: Object with ``compress(data)`` and ``flush([mode])``.
        sync_mode: Mode passed to ``flush`` for a non-terminating flush, or
            ``None`` if the engine cannot flush without ending the stream.
    """

    def __init__(self, compressobj: Any, sync_mode: int | None = None) -> None:
        self._compressobj = compressobj
        self._sync_mode = sync_mode

    def compress(self, data: bytes) -> bytes:
        return self._compressobj.compress(data)

    def sync(self) -> bytes:
        if self._sync_mode is None:
            return b""
        return self._compressobj.flush(self._sync_mode)

    def finish(self) -> bytes:
        return self._compressobj.flush()


class OutputLimit(Enum):
    """How a ``decompressobj``-style object bounds one call's output."""

    NATIVE = auto()  # decompress(data, max_length) and needs_input
    TAIL = auto()  # decompress(data, max_length) and unconsumed_tail
    NONE = auto()  # decompress(data) decodes everything it is given


class DecompressObjEngine:
    """Adapts a ``decompressobj``-style object to :class:`DecompressorEngine`.

    Every :meth:`decompress` call returns at most ``max_length`` bytes.
    Objects that cannot bound their own output (``OutputLimit.NONE``) are
    fed input in slices no larger than the requested output, and whatever
    a slice decodes beyond the request is held for the next call.

    Args:
        decompressobj: The wrapped decompressor.
        limit: How ``decompressobj`` bounds its output.
        end_marker: Whether the format marks the end of a stream. Formats
            without one are validated by the wrapped object's ``flush()``.
    """

    _MAX_STEP = 64 * 1024

    def __init__(
        self,
        decompressobj: Any,
        limit: OutputLimit = OutputLimit.NATIVE,
        end_marker: bool = True,
    ) -> None:
        self._decompressobj = decompressobj
        self._limit = limit
        self._end_marker = end_marker
        self._started = False
        self._input = bytearray()
        self._surplus = bytearray()
        self._step = 1

    @property
    def eof(self) -> bool:
        if not self._end_marker:
            return False
        return self._decompressobj.eof and not self._surplus

    @property
    def needs_input(self) -> bool:
        if self._limit is OutputLimit.NATIVE:
            return self._decompressobj.needs_input
        if self._limit is OutputLimit.TAIL:
            return not self._decompressobj.unconsumed_tail
        return not self._input and not self._surplus

    @property
    def unused_data(self) -> bytes:
        # lz4 reports None until a frame ends
        unused = getattr(self._decompressobj, "unused_data", None) or b""
        if self._input:
            unused += bytes(self._input)
        return unused

    def decompress(self, data: bytes, max_length: int = -1) -> bytes:
        if data:
            self._started = True
        if self._limit is OutputLimit.NATIVE:
            return self._decompressobj.decompress(data, max_length)
        if self._limit is OutputLimit.TAIL:
            # zlib spells "unlimited" as 0
            tail = self._decompressobj.unconsumed_tail
            return self._decompressobj.decompress(tail + data, max(max_length, 0))
        self._input += data
        if max_length < 0:
            if self._input and not self._done():
                self._surplus += self._feed(len(self._input))
        else:
            while len(self._surplus) < max_length and self._input and not self._done():
                step = min(self._step, max_length)
                out = self._feed(step)
                if len(out) > max_length:
                    self._step = max(1, step // 2)
                elif self._step < self._MAX_STEP:
                    self._step *= 2
                self._surplus += out
        if max_length < 0:
            max_length = len(self._surplus)
        out = bytes(self._surplus[:max_length])
        del self._surplus[:max_length]
        return out

    def finish(self) -> bytes:
        if not self._end_marker:
            return self._decompressobj.flush()
        if self._started and not self._decompressobj.eof:
            raise EOFError(
                "Compressed stream ended before the end-of-stream marker was reached"
            )
        return b""

    def _done(self) -> bool:
        return self._end_marker and self._decompressobj.eof

    def _feed(self, size: int) -> bytes:
        piece = bytes(self._input[:size])
        del self._input[:size]
        return self._decompressobj.decompress(piece)


# =============================================================================
# Base Adapter
# =============================================================================


class CodecStream(io.RawIOBase):
    """State shared by readers and writers: the wrapped stream, metrics and
    engine error translation."""

    def __init__(
        self,
        raw: BinaryIO,
        algorithm: CompressionAlgorithm,
        config: StreamConfig | None = None,
    ) -> None:
        super().__init__()
        self._raw = raw
        self._algorithm = algorithm
        self._config = config or StreamConfig()
        self._metrics = StreamingMetrics(start_time=time.time())

    @property
    def algorithm(self) -> CompressionAlgorithm:
        return self._algorithm

    @property
    def metrics(self) -> StreamingMetrics:
        return self._metrics

    def _check_open(self) -> None:
        if self.closed:
            raise ValueError("I/O operation on closed stream")

    def _engine_call(
        self,
        fn: Callable[..., Any],
        *args: Any,
        error: type[CompressionError] = CompressionStreamError,
    ) -> Any:
        """Call into the codec engine, translating its failures to ``error``."""
        try:
            return fn(*args)
        except CompressionError:
            self._metrics.errors += 1
            raise
        except Exception as e:
            self._metrics.errors += 1
            raise error(f"Engine failure: {e}", self._algorithm.value) from e

    def _close_raw(self) -> None:
        if self._config.close_underlying:
            self._raw.close()


# =============================================================================
# Writers
# =============================================================================


class StreamWriter(CodecStream):
    """Abstract base for compressing writers.

    Subclasses implement :meth:`write` and :meth:`_finalize`. ``_finalize``
    must be idempotent; :meth:`close` and implicit teardown both route
    through it.
    """

    _finalized = True

    def __init__(
        self,
        sink: BinaryIO,
        algorithm: CompressionAlgorithm,
        config: StreamConfig | None = None,
    ) -> None:
        super().__init__(sink, algorithm, config)

    @property
    def sink(self) -> BinaryIO:
        return self._raw

    def writable(self) -> bool:
        return True

    @abstractmethod
    def write(self, data: Any) -> int:
        """Consume ``data`` and return its length."""
        ...

    @abstractmethod
    def _finalize(self) -> None:
        """Write any trailer. Must be idempotent."""
        ...

    def _emit(self, data: bytes) -> None:
        """Write all of ``data`` to the sink, retrying short writes."""
        view = memoryview(data)
        total = 0
        while total < len(view):
            written = self._raw.write(view[total:])
            if written is None:
                raise BlockingIOError(
                    errno.EAGAIN, "write could not complete without blocking", total
                )
            total += written
            self._metrics.bytes_out += written

    def _record_input(self, size: int) -> None:
        self._metrics.bytes_in += size
        self._metrics.chunks_processed += 1

    def _mark_finalized(self) -> None:
        self._metrics.end_time = time.time()
        self._metrics.update_ratio(compressing=True)
        logger.debug(
            "Finalized %s writer: %d bytes in, %d bytes out",
            self._algorithm.value,
            self._metrics.bytes_in,
            self._metrics.bytes_out,
        )

    def flush(self) -> None:
        self._check_open()
        self._raw.flush()

    def close(self) -> None:
        if self.closed:
            return
        try:
            self._finalize()
        finally:
            try:
                super().close()
            finally:
                self._close_raw()

    def __del__(self) -> None:
        # Nobody is left to observe a failure here.
        try:
            self.close()
        except Exception:
            logger.warning(
                "Ignoring error while finalizing an unclosed %s",
                type(self).__name__,
                exc_info=True,
            )


class PassthroughWriter(StreamWriter):
    """Writes bytes through unchanged."""

    def __init__(self, sink: BinaryIO, config: StreamConfig | None = None) -> None:
        super().__init__(sink, CompressionAlgorithm.NONE, config)
        self._finalized = False

    def write(self, data: Any) -> int:
        self._check_open()
        data = bytes(data)
        self._emit(data)
        self._record_input(len(data))
        return len(data)

    def _finalize(self) -> None:
        if self._finalized:
            return
        self._finalized = True
        self._raw.flush()
        self._mark_finalized()


class CompressingWriter(StreamWriter):
    """Writer driving an incremental :class:`CompressorEngine`.

    Used for every codec whose engine already handles its own framing
    (zstd, gzip, zlib, deflate, bzip2, xz, snappy).
    """

    def __init__(
        self,
        sink: BinaryIO,
        engine: CompressorEngine,
        algorithm: CompressionAlgorithm,
        config: StreamConfig | None = None,
    ) -> None:
        super().__init__(sink, algorithm, config)
        self._engine = engine
        self._finalized = False
        logger.debug("Opened %s writer", algorithm.value)

    def write(self, data: Any) -> int:
        self._check_open()
        if self._finalized:
            raise ValueError("write to a finalized stream")
        with memoryview(data) as view:
            size = view.nbytes
        if size == 0:
            return 0
        self._emit(self._engine_call(self._engine.compress, data))
        self._record_input(size)
        return size

    def flush(self) -> None:
        self._check_open()
        if not self._finalized:
            self._emit(self._engine_call(self._engine.sync))
        self._raw.flush()

    def _finalize(self) -> None:
        if self._finalized:
            return
        self._finalized = True
        self._emit(self._engine_call(self._engine.finish))
        self._raw.flush()
        self._mark_finalized()


class LZ4StreamWriter(StreamWriter):
    """LZ4 frame writer with two-phase finalization.

    The encoder lives in a single slot. :meth:`finish` takes it out, writes
    the frame footer (end mark and content checksum), flushes the sink and
    hands the sink back. Once the slot is empty, further finalization is a
    no-op, so an explicit ``finish()`` followed by ``close()`` or garbage
    collection never writes a second footer.

    Args:
        sink: Raw binary sink.
        encoder: An un-started ``lz4.frame.LZ4FrameCompressor``.
        config: Stream configuration.
    """

    _encoder: Any = None

    def __init__(
        self,
        sink: BinaryIO,
        encoder: Any,
        config: StreamConfig | None = None,
    ) -> None:
        super().__init__(sink, CompressionAlgorithm.LZ4, config)
        header = self._engine_call(encoder.begin)
        self._emit(header)
        self._encoder = encoder
        logger.debug("Opened lz4 writer")

    @property
    def finished(self) -> bool:
        return self._encoder is None

    def write(self, data: Any) -> int:
        self._check_open()
        encoder = self._encoder
        if encoder is None:
            raise ValueError("write to a finished LZ4 stream")
        with memoryview(data) as view:
            size = view.nbytes
        if size == 0:
            return 0
        self._emit(self._engine_call(encoder.compress, data))
        self._record_input(size)
        return size

    def finish(self) -> BinaryIO:
        """Write the frame footer, flush and return the sink."""
        encoder, self._encoder = self._encoder, None
        if encoder is not None:
            self._emit(self._engine_call(encoder.flush))
            self._raw.flush()
            self._mark_finalized()
        return self._raw

    def _finalize(self) -> None:
        self.finish()


class LzoStreamWriter(StreamWriter):
    """Writer for block engines that compress into a caller-owned buffer.

    Each :meth:`write` hands the whole input to the engine together with a
    scratch buffer and acts on the returned status:

    - ``OK``: the compressed block in the scratch buffer is written out.
    - ``NOT_COMPRESSIBLE``: whatever block descriptor the engine placed in
      the scratch buffer is written, followed by the input bytes verbatim.
    - ``OUTPUT_OVERRUN``: the scratch buffer doubles and the same input is
      retried, up to ``StreamConfig.lzo_max_buffer_size``.
    - ``ERROR``: raised as :class:`CompressionStreamError`.

    There is no trailer, so finalization writes nothing and leaves the sink
    alone; it only closes the metrics.
    """

    def __init__(
        self,
        sink: BinaryIO,
        engine: LzoEngine,
        config: StreamConfig | None = None,
    ) -> None:
        super().__init__(sink, CompressionAlgorithm.LZO, config)
        self._engine = engine
        self._scratch = bytearray(self._config.lzo_buffer_size)
        self._finalized = False
        logger.debug("Opened lzo writer")

    @property
    def scratch_size(self) -> int:
        return len(self._scratch)

    def write(self, data: Any) -> int:
        self._check_open()
        data = bytes(data)
        if not data:
            return 0
        while True:
            result = self._engine_call(self._engine.compress, data, self._scratch)
            if result.status is LzoStatus.OK:
                self._emit(bytes(self._scratch[: result.length]))
                break
            if result.status is LzoStatus.NOT_COMPRESSIBLE:
                self._emit(bytes(self._scratch[: result.length]))
                self._emit(data)
                break
            if result.status is LzoStatus.OUTPUT_OVERRUN:
                self._grow_scratch()
                continue
            self._metrics.errors += 1
            raise CompressionStreamError(
                f"Engine failure: {result.message or result.status.name}",
                self._algorithm.value,
            )
        self._record_input(len(data))
        return len(data)

    def _grow_scratch(self) -> None:
        capacity = len(self._scratch) * 2
        if capacity > self._config.lzo_max_buffer_size:
            self._metrics.errors += 1
            raise CompressionStreamError(
                f"Scratch buffer would grow to {capacity} bytes, "
                f"above the {self._config.lzo_max_buffer_size} byte limit",
                self._algorithm.value,
            )
        logger.debug("Growing lzo scratch buffer to %d bytes", capacity)
        self._scratch = bytearray(capacity)

    def _finalize(self) -> None:
        if self._finalized:
            return
        self._finalized = True
        self._mark_finalized()


# =============================================================================
# Readers
# =============================================================================


class StreamReader(CodecStream):
    """Abstract base for decompressing readers."""

    @property
    def source(self) -> BinaryIO:
        return self._raw

    def readable(self) -> bool:
        return True

    @abstractmethod
    def read(self, size: int | None = -1) -> bytes:
        """Return up to ``size`` decompressed bytes, or everything if negative."""
        ...

    def readinto(self, b: Any) -> int:
        with memoryview(b) as view, view.cast("B") as byte_view:
            data = self.read(len(byte_view))
            byte_view[: len(data)] = data
        return len(data)

    def close(self) -> None:
        if self.closed:
            return
        try:
            self._metrics.end_time = time.time()
            self._metrics.update_ratio(compressing=False)
            super().close()
        finally:
            self._close_raw()


class PassthroughReader(StreamReader):
    """Reads bytes through unchanged."""

    def __init__(self, source: BinaryIO, config: StreamConfig | None = None) -> None:
        super().__init__(source, CompressionAlgorithm.NONE, config)

    def read(self, size: int | None = -1) -> bytes:
        self._check_open()
        if size is None or size < 0:
            return self.readall()
        data = self._raw.read(size) or b""
        self._metrics.bytes_in += len(data)
        self._metrics.bytes_out += len(data)
        self._metrics.chunks_processed += 1
        return data


class DecompressingReader(StreamReader):
    """Reader driving an incremental :class:`DecompressorEngine`.

    Compressed bytes are pulled from the source ``config.chunk_size`` at a
    time, and each :meth:`read` asks the engine for at most ``size`` bytes,
    so a small read never expands a whole chunk of highly compressed input.
    When the engine reports ``eof`` and more input follows, a fresh engine
    is started so concatenated members/frames decode back to back.

    Args:
        source: Raw binary source of compressed bytes.
        factory: Zero-argument callable returning a new engine.
        algorithm: Codec identifier, for errors and metrics.
        config: Stream configuration.
    """

    def __init__(
        self,
        source: BinaryIO,
        factory: Callable[[], DecompressorEngine],
        algorithm: CompressionAlgorithm,
        config: StreamConfig | None = None,
    ) -> None:
        super().__init__(source, algorithm, config)
        self._factory = factory
        self._decompressor = self._engine_call(factory, error=CodecInitError)
        self._eof = False
        logger.debug("Opened %s reader", algorithm.value)

    def read(self, size: int | None = -1) -> bytes:
        self._check_open()
        if size is None or size < 0:
            return self.readall()
        if size == 0 or self._eof:
            return b""
        data = b""
        while not data:
            decompressor = self._decompressor
            if decompressor.eof:
                rawblock = decompressor.unused_data or self._read_source()
                if not rawblock:
                    self._eof = True
                    return b""
                self._decompressor = decompressor = self._engine_call(
                    self._factory, error=CodecInitError
                )
            elif decompressor.needs_input:
                rawblock = self._read_source()
                if not rawblock:
                    return self._drain(size)
            else:
                rawblock = b""
            data = self._decompress(rawblock, size)
        return data

    def _decompress(self, rawblock: bytes, size: int) -> bytes:
        data = self._engine_call(
            self._decompressor.decompress, rawblock, size, error=DecompressionError
        )
        self._metrics.bytes_out += len(data)
        return data

    def _drain(self, size: int) -> bytes:
        """Source is exhausted: return remaining output, then validate the end."""
        data = self._decompress(b"", size)
        if data:
            return data
        self._eof = True
        data = self._engine_call(self._decompressor.finish, error=DecompressionError)
        self._metrics.bytes_out += len(data)
        return data

    def _read_source(self) -> bytes:
        rawblock = self._raw.read(self._config.chunk_size) or b""
        if rawblock:
            self._metrics.bytes_in += len(rawblock)
            self._metrics.chunks_processed += 1
        return rawblock
