"""Codec registry and dispatch.

Each codec identifier maps to a :class:`BaseCodec` subclass that knows
which parameters it reads, how to build its engine, and which stream
adapter wraps it. Third-party engine libraries are imported lazily, so a
missing optional library only fails when that codec is requested.
"""

from __future__ import annotations

import bz2
import importlib
import importlib.util
import logging
import lzma
import zlib
from abc import ABC
from dataclasses import dataclass
from typing import Any, BinaryIO, Callable, ClassVar, Type

from codecstream.base import (
    CodecInitError,
    CompressionAlgorithm,
    CompressionError,
    CompressorEngine,
    DecompressorEngine,
    StreamConfig,
    UnsupportedAlgorithmError,
)
from codecstream.lzo import LzoBlockDecoder, PyLzoEngine
from codecstream.params import ParameterSet, ParameterSetLike
from codecstream.streaming import (
    CompressObjEngine,
    CompressingWriter,
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

logger = logging.getLogger(__name__)


# =============================================================================
# Descriptors
# =============================================================================


@dataclass(frozen=True)
class ParameterSpec:
    """A write parameter recognized by a codec.

    Ranges are informational: values are handed to the engine as parsed,
    and the engine decides whether it accepts them.

    Attributes:
        name: Parameter name in the parameter string.
        default: Value used when the parameter is missing or unparseable.
        minimum: Lowest value the engine documents.
        maximum: Highest value the engine documents.
        choices: Accepted spellings for enumerated parameters.
        description: Human-readable summary.
    """

    name: str
    default: Any
    minimum: int | None = None
    maximum: int | None = None
    choices: tuple[str, ...] = ()
    description: str = ""

    @property
    def kind(self) -> str:
        return "enum" if self.choices else type(self.default).__name__

    def read(self, params: ParameterSet) -> Any:
        """Read this parameter, falling back to the default."""
        if self.choices:
            value = params.get_string(self.name, self.default)
            return value if value in self.choices else self.default
        return params.get_parsed(self.name, self.default)

    def describe(self) -> str:
        if self.choices:
            spec = "{" + ",".join(self.choices) + "}"
        elif self.minimum is not None and self.maximum is not None:
            spec = f"{self.minimum}-{self.maximum}"
        else:
            spec = self.kind
        return f"{self.name}: {self.kind}, {spec}, default {self.default}"


@dataclass(frozen=True)
class CodecDescriptor:
    """Parameter semantics for one codec."""

    algorithm: CompressionAlgorithm
    parameters: tuple[ParameterSpec, ...] = ()
    description: str = ""

    def resolve(self, params: ParameterSet) -> dict[str, Any]:
        """Read the parameters this codec recognizes; others are ignored."""
        return {spec.name: spec.read(params) for spec in self.parameters}

    def defaults(self) -> dict[str, Any]:
        return {spec.name: spec.default for spec in self.parameters}

    def to_dict(self) -> dict[str, Any]:
        return {
            "algorithm": self.algorithm.value,
            "aliases": self.algorithm.aliases,
            "extension": self.algorithm.extension,
            "description": self.description,
            "parameters": [spec.describe() for spec in self.parameters],
        }


def _level(default: int, minimum: int, maximum: int) -> ParameterSpec:
    return ParameterSpec(
        name="level",
        default=default,
        minimum=minimum,
        maximum=maximum,
        description="Compression level",
    )


# =============================================================================
# Base Codec
# =============================================================================


class BaseCodec(ABC):
    """Abstract base class for codec implementations.

    Subclasses either provide engine factories (``create_compressor`` /
    ``create_decompressor``) and inherit the default adapters, or override
    ``open_writer`` / ``open_reader`` when the codec needs a bespoke adapter.
    """

    descriptor: ClassVar[CodecDescriptor]
    module_name: ClassVar[str | None] = None

    _modules: ClassVar[dict[str, Any]] = {}

    @property
    def algorithm(self) -> CompressionAlgorithm:
        return self.descriptor.algorithm

    @classmethod
    def is_available(cls) -> bool:
        """Check whether the engine library can be imported."""
        if cls.module_name is None:
            return True
        top_level = cls.module_name.partition(".")[0]
        return importlib.util.find_spec(top_level) is not None

    @classmethod
    def _module(cls) -> Any:
        """Lazy import of the engine library."""
        name = cls.module_name
        if name is None:
            raise TypeError(f"{cls.__name__} has no engine module")
        if name not in BaseCodec._modules:
            try:
                BaseCodec._modules[name] = importlib.import_module(name)
            except ImportError:
                raise UnsupportedAlgorithmError(
                    cls.descriptor.algorithm.value,
                    [a.value for a in list_available_algorithms()],
                )
        return BaseCodec._modules[name]

    def create_compressor(self, **settings: Any) -> CompressorEngine:
        raise NotImplementedError(f"{type(self).__name__} has no compressor engine")

    def create_decompressor(self) -> DecompressorEngine:
        raise NotImplementedError(f"{type(self).__name__} has no decompressor engine")

    def _build(self, factory: Callable[..., Any], **settings: Any) -> Any:
        try:
            return factory(**settings)
        except CompressionError:
            raise
        except Exception as e:
            raise CodecInitError(
                f"Engine rejected settings {settings}: {e}", self.algorithm.value
            ) from e

    def open_writer(
        self,
        sink: BinaryIO,
        params: ParameterSet,
        config: StreamConfig | None = None,
    ) -> StreamWriter:
        """Wrap ``sink`` in a compressing writer configured from ``params``."""
        settings = self.descriptor.resolve(params)
        engine = self._build(self.create_compressor, **settings)
        return CompressingWriter(sink, engine, self.algorithm, config)

    def open_reader(
        self,
        source: BinaryIO,
        config: StreamConfig | None = None,
    ) -> StreamReader:
        """Wrap ``source`` in a decompressing reader."""
        return DecompressingReader(
            source, self.create_decompressor, self.algorithm, config
        )


# =============================================================================
# Codecs
# =============================================================================


class NoneCodec(BaseCodec):
    """Passthrough, no transformation."""

    descriptor = CodecDescriptor(
        algorithm=CompressionAlgorithm.NONE,
        description="No compression",
    )

    def open_writer(
        self,
        sink: BinaryIO,
        params: ParameterSet,
        config: StreamConfig | None = None,
    ) -> StreamWriter:
        return PassthroughWriter(sink, config)

    def open_reader(
        self,
        source: BinaryIO,
        config: StreamConfig | None = None,
    ) -> StreamReader:
        return PassthroughReader(source, config)


class ZstdCodec(BaseCodec):
    """Zstandard frames through the zstandard library."""

    descriptor = CodecDescriptor(
        algorithm=CompressionAlgorithm.ZSTD,
        parameters=(_level(3, 1, 22),),
        description="Zstandard",
    )
    module_name = "zstandard"

    def create_compressor(self, level: int) -> CompressorEngine:
        zstd = self._module()
        compressobj = zstd.ZstdCompressor(level=level).compressobj()
        return CompressObjEngine(compressobj, sync_mode=zstd.COMPRESSOBJ_FLUSH_BLOCK)

    def create_decompressor(self) -> DecompressorEngine:
        decompressobj = self._module().ZstdDecompressor().decompressobj()
        return DecompressObjEngine(decompressobj, OutputLimit.NONE)


class SnappyCodec(BaseCodec):
    """Snappy framing format through python-snappy. Takes no parameters."""

    descriptor = CodecDescriptor(
        algorithm=CompressionAlgorithm.SNAPPY,
        description="Snappy (framing format)",
    )
    module_name = "snappy"

    def create_compressor(self) -> CompressorEngine:
        return CompressObjEngine(self._module().StreamCompressor())

    def create_decompressor(self) -> DecompressorEngine:
        return DecompressObjEngine(
            self._module().StreamDecompressor(), OutputLimit.NONE, end_marker=False
        )


class _ZlibFamilyCodec(BaseCodec):
    """DEFLATE-based codecs differing only in their container (``wbits``)."""

    wbits: ClassVar[int]

    def create_compressor(self, level: int) -> CompressorEngine:
        compressobj = zlib.compressobj(level, zlib.DEFLATED, self.wbits)
        return CompressObjEngine(compressobj, sync_mode=zlib.Z_SYNC_FLUSH)

    def create_decompressor(self) -> DecompressorEngine:
        return DecompressObjEngine(zlib.decompressobj(self.wbits), OutputLimit.TAIL)


class GzipCodec(_ZlibFamilyCodec):
    """Gzip container (RFC 1952)."""

    descriptor = CodecDescriptor(
        algorithm=CompressionAlgorithm.GZIP,
        parameters=(_level(3, 0, 9),),
        description="Gzip",
    )
    wbits = 16 + zlib.MAX_WBITS


class ZlibCodec(_ZlibFamilyCodec):
    """Zlib container (RFC 1950)."""

    descriptor = CodecDescriptor(
        algorithm=CompressionAlgorithm.ZLIB,
        parameters=(_level(3, 0, 9),),
        description="Zlib",
    )
    wbits = zlib.MAX_WBITS


class DeflateCodec(_ZlibFamilyCodec):
    """Raw DEFLATE (RFC 1951), no header or trailer."""

    descriptor = CodecDescriptor(
        algorithm=CompressionAlgorithm.DEFLATE,
        parameters=(_level(3, 0, 9),),
        description="Raw Deflate",
    )
    wbits = -zlib.MAX_WBITS


class Bzip2Codec(BaseCodec):
    """Bzip2 through the standard library."""

    descriptor = CodecDescriptor(
        algorithm=CompressionAlgorithm.BZIP2,
        parameters=(_level(3, 1, 9),),
        description="Bzip2",
    )

    def create_compressor(self, level: int) -> CompressorEngine:
        return CompressObjEngine(bz2.BZ2Compressor(level))

    def create_decompressor(self) -> DecompressorEngine:
        return DecompressObjEngine(bz2.BZ2Decompressor())


class XzCodec(BaseCodec):
    """XZ container through the standard library lzma module."""

    descriptor = CodecDescriptor(
        algorithm=CompressionAlgorithm.XZ,
        parameters=(_level(6, 0, 9),),
        description="XZ",
    )

    def create_compressor(self, level: int) -> CompressorEngine:
        return CompressObjEngine(lzma.LZMACompressor(format=lzma.FORMAT_XZ, preset=level))

    def create_decompressor(self) -> DecompressorEngine:
        return DecompressObjEngine(lzma.LZMADecompressor(format=lzma.FORMAT_XZ))


class LZ4Codec(BaseCodec):
    """LZ4 frame format through lz4.frame.

    Auto-flush and the content checksum are always on. ``block_mode`` picks
    linked or independent blocks; any other spelling means linked.
    """

    descriptor = CodecDescriptor(
        algorithm=CompressionAlgorithm.LZ4,
        parameters=(
            _level(1, 0, 16),
            ParameterSpec(
                name="block_mode",
                default="linked",
                choices=("linked", "independent"),
                description="Whether blocks may reference earlier blocks",
            ),
        ),
        description="LZ4 frame",
    )
    module_name = "lz4.frame"

    def _create_encoder(self, level: int, block_mode: str) -> Any:
        return self._module().LZ4FrameCompressor(
            block_linked=block_mode != "independent",
            compression_level=level,
            content_checksum=True,
            auto_flush=True,
        )

    def open_writer(
        self,
        sink: BinaryIO,
        params: ParameterSet,
        config: StreamConfig | None = None,
    ) -> StreamWriter:
        settings = self.descriptor.resolve(params)
        encoder = self._build(self._create_encoder, **settings)
        return LZ4StreamWriter(sink, encoder, config)

    def create_decompressor(self) -> DecompressorEngine:
        return DecompressObjEngine(self._module().LZ4FrameDecompressor())


class LzoCodec(BaseCodec):
    """LZO1X blocks through python-lzo; see :mod:`codecstream.lzo`."""

    descriptor = CodecDescriptor(
        algorithm=CompressionAlgorithm.LZO,
        parameters=(_level(1, 1, 9),),
        description="LZO1X blocks",
    )
    module_name = "lzo"

    def open_writer(
        self,
        sink: BinaryIO,
        params: ParameterSet,
        config: StreamConfig | None = None,
    ) -> StreamWriter:
        settings = self.descriptor.resolve(params)
        engine = self._build(PyLzoEngine, lzo_module=self._module(), **settings)
        return LzoStreamWriter(sink, engine, config)

    def create_decompressor(self) -> DecompressorEngine:
        return DecompressObjEngine(
            LzoBlockDecoder(self._module()), OutputLimit.NONE, end_marker=False
        )


# =============================================================================
# Registry and Factory
# =============================================================================


_CODEC_REGISTRY: dict[CompressionAlgorithm, Type[BaseCodec]] = {
    CompressionAlgorithm.NONE: NoneCodec,
    CompressionAlgorithm.ZSTD: ZstdCodec,
    CompressionAlgorithm.SNAPPY: SnappyCodec,
    CompressionAlgorithm.GZIP: GzipCodec,
    CompressionAlgorithm.ZLIB: ZlibCodec,
    CompressionAlgorithm.DEFLATE: DeflateCodec,
    CompressionAlgorithm.BZIP2: Bzip2Codec,
    CompressionAlgorithm.LZ4: LZ4Codec,
    CompressionAlgorithm.XZ: XzCodec,
    CompressionAlgorithm.LZO: LzoCodec,
}


def register_codec(
    algorithm: CompressionAlgorithm,
    codec_class: Type[BaseCodec],
) -> None:
    """Register a custom codec implementation.

    Args:
        algorithm: Algorithm identifier.
        codec_class: Codec class to register.
    """
    _CODEC_REGISTRY[algorithm] = codec_class


def get_codec(algorithm: str | CompressionAlgorithm) -> BaseCodec:
    """Create the codec for an identifier.

    Raises:
        UnsupportedAlgorithmError: If the identifier is not recognized.
    """
    algorithm = CompressionAlgorithm.from_name(algorithm)
    codec_class = _CODEC_REGISTRY.get(algorithm)
    if codec_class is None:
        raise UnsupportedAlgorithmError(
            algorithm.value,
            [a.value for a in _CODEC_REGISTRY.keys()],
        )
    return codec_class()


def build_writer(
    sink: BinaryIO,
    algorithm: str | CompressionAlgorithm,
    params: ParameterSetLike = None,
    config: StreamConfig | None = None,
) -> StreamWriter:
    """Build the compressing adapter for ``algorithm`` around ``sink``.

    Raises:
        CompressionConfigError: Unknown codec, missing engine library or
            malformed parameters.
        CodecInitError: The engine rejected its settings.
    """
    config = config or StreamConfig()
    config.validate()
    codec = get_codec(algorithm)
    param_set = ParameterSet.from_value(params)
    logger.debug(
        "Building %s writer with %s", codec.algorithm.value, codec.descriptor.resolve(param_set)
    )
    return codec.open_writer(sink, param_set, config)


def build_reader(
    source: BinaryIO,
    algorithm: str | CompressionAlgorithm,
    config: StreamConfig | None = None,
) -> StreamReader:
    """Build the decompressing adapter for ``algorithm`` around ``source``."""
    config = config or StreamConfig()
    config.validate()
    codec = get_codec(algorithm)
    logger.debug("Building %s reader", codec.algorithm.value)
    return codec.open_reader(source, config)


def list_available_algorithms() -> list[CompressionAlgorithm]:
    """List registered algorithms whose engine library is importable."""
    return [
        algorithm
        for algorithm, codec_class in _CODEC_REGISTRY.items()
        if codec_class.is_available()
    ]


def is_algorithm_available(algorithm: str | CompressionAlgorithm) -> bool:
    """Check if a codec is known and its engine library is importable."""
    try:
        algorithm = CompressionAlgorithm.from_name(algorithm)
    except UnsupportedAlgorithmError:
        return False
    codec_class = _CODEC_REGISTRY.get(algorithm)
    return codec_class is not None and codec_class.is_available()


def describe_codecs() -> list[dict[str, Any]]:
    """Describe every registered codec, for listings."""
    descriptions = []
    for algorithm, codec_class in _CODEC_REGISTRY.items():
        info = codec_class.descriptor.to_dict()
        info["available"] = codec_class.is_available()
        descriptions.append(info)
    return descriptions
