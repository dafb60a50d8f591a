"""Tests for the codec registry."""

import io

import pytest

from codecstream import (
    BaseCodec,
    CodecInitError,
    CompressionAlgorithm,
    CompressionError,
    ParameterSet,
    PassthroughWriter,
    UnsupportedAlgorithmError,
    build_reader,
    build_writer,
    describe_codecs,
    get_codec,
    is_algorithm_available,
    list_available_algorithms,
    register_codec,
)
from codecstream.providers import (
    GzipCodec,
    LZ4Codec,
    NoneCodec,
    ParameterSpec,
    _CODEC_REGISTRY,
)


class TestParameterSpec:
    """Tests for ParameterSpec."""

    def test_numeric_default(self):
        """Test that a missing numeric parameter yields its default."""
        spec = ParameterSpec(name="level", default=3, minimum=0, maximum=9)
        assert spec.read(ParameterSet()) == 3
        assert spec.read(ParameterSet.parse("level=7")) == 7
        assert spec.read(ParameterSet.parse("level=x")) == 3

    def test_out_of_range_is_passed_through(self):
        """Test that ranges are not enforced at this layer."""
        spec = ParameterSpec(name="level", default=3, minimum=0, maximum=9)
        assert spec.read(ParameterSet.parse("level=42")) == 42

    def test_choices_fall_back_to_default(self):
        """Test that an unknown enumerated spelling yields the default."""
        spec = ParameterSpec(
            name="block_mode", default="linked", choices=("linked", "independent")
        )
        assert spec.read(ParameterSet.parse("block_mode=independent")) == "independent"
        assert spec.read(ParameterSet.parse("block_mode=chained")) == "linked"
        assert spec.kind == "enum"

    def test_describe(self):
        """Test the human-readable description."""
        spec = ParameterSpec(name="level", default=3, minimum=1, maximum=22)
        assert spec.describe() == "level: int, 1-22, default 3"


class TestDescriptors:
    """Tests for the per-codec parameter table."""

    @pytest.mark.parametrize(
        "algorithm,defaults",
        [
            (CompressionAlgorithm.NONE, {}),
            (CompressionAlgorithm.ZSTD, {"level": 3}),
            (CompressionAlgorithm.SNAPPY, {}),
            (CompressionAlgorithm.GZIP, {"level": 3}),
            (CompressionAlgorithm.ZLIB, {"level": 3}),
            (CompressionAlgorithm.DEFLATE, {"level": 3}),
            (CompressionAlgorithm.BZIP2, {"level": 3}),
            (CompressionAlgorithm.LZ4, {"level": 1, "block_mode": "linked"}),
            (CompressionAlgorithm.XZ, {"level": 6}),
            (CompressionAlgorithm.LZO, {"level": 1}),
        ],
    )
    def test_defaults(self, algorithm, defaults):
        """Test documented defaults."""
        assert get_codec(algorithm).descriptor.defaults() == defaults

    @pytest.mark.parametrize(
        "algorithm,bounds",
        [
            (CompressionAlgorithm.ZSTD, (1, 22)),
            (CompressionAlgorithm.GZIP, (0, 9)),
            (CompressionAlgorithm.BZIP2, (1, 9)),
            (CompressionAlgorithm.LZ4, (0, 16)),
            (CompressionAlgorithm.XZ, (0, 9)),
        ],
    )
    def test_level_ranges(self, algorithm, bounds):
        """Test documented level ranges."""
        level = get_codec(algorithm).descriptor.parameters[0]
        assert level.name == "level"
        assert (level.minimum, level.maximum) == bounds

    def test_unrelated_parameters_are_ignored(self):
        """Test that a codec only reads its own parameters."""
        descriptor = get_codec("gzip").descriptor
        settings = descriptor.resolve(ParameterSet.parse("level=5;block_mode=independent"))
        assert settings == {"level": 5}

    def test_lz4_block_mode_fallback(self):
        """Test that an unrecognized block_mode means linked."""
        descriptor = get_codec("lz4").descriptor
        settings = descriptor.resolve(ParameterSet.parse("block_mode=bogus"))
        assert settings == {"level": 1, "block_mode": "linked"}


class TestRegistry:
    """Tests for registry lookup."""

    def test_every_identifier_is_registered(self):
        """Test that dispatch is exhaustive over the identifier set."""
        assert set(_CODEC_REGISTRY) == set(CompressionAlgorithm)

    def test_get_codec_by_alias(self):
        """Test lookup by alias."""
        assert isinstance(get_codec("gz"), GzipCodec)
        assert isinstance(get_codec("LZ4"), LZ4Codec)
        assert get_codec("raw").algorithm == CompressionAlgorithm.NONE

    def test_get_unknown_codec(self):
        """Test that an unknown codec is rejected."""
        with pytest.raises(UnsupportedAlgorithmError):
            get_codec("unknown")

    def test_builtin_codecs_available(self):
        """Test that standard library and required codecs are available."""
        available = list_available_algorithms()
        for algorithm in (
            CompressionAlgorithm.NONE,
            CompressionAlgorithm.GZIP,
            CompressionAlgorithm.ZLIB,
            CompressionAlgorithm.DEFLATE,
            CompressionAlgorithm.BZIP2,
            CompressionAlgorithm.XZ,
            CompressionAlgorithm.ZSTD,
            CompressionAlgorithm.LZ4,
        ):
            assert algorithm in available
            assert is_algorithm_available(algorithm)

    def test_is_algorithm_available_unknown(self):
        """Test that unknown names are reported unavailable."""
        assert is_algorithm_available("brotli") is False
        assert is_algorithm_available("gz") is True

    def test_describe_codecs(self):
        """Test the codec listing."""
        info = {entry["algorithm"]: entry for entry in describe_codecs()}

        assert set(info) == {a.value for a in CompressionAlgorithm}
        assert info["gzip"]["available"] is True
        assert "gz" in info["gzip"]["aliases"]
        assert info["lz4"]["parameters"] == [
            "level: int, 0-16, default 1",
            "block_mode: enum, {linked,independent}, default linked",
        ]

    def test_register_custom_codec(self, monkeypatch):
        """Test replacing a registry entry."""

        class LoudNone(NoneCodec):
            opened = 0

            def open_writer(self, sink, params, config=None):
                LoudNone.opened += 1
                return super().open_writer(sink, params, config)

        monkeypatch.setitem(_CODEC_REGISTRY, CompressionAlgorithm.NONE, NoneCodec)
        register_codec(CompressionAlgorithm.NONE, LoudNone)

        writer = build_writer(io.BytesIO(), "none")

        assert isinstance(get_codec("none"), LoudNone)
        assert isinstance(writer, PassthroughWriter)
        assert LoudNone.opened == 1

    def test_missing_engine_library(self, monkeypatch):
        """Test that a missing engine library is a configuration error."""

        class GhostCodec(BaseCodec):
            descriptor = get_codec("zstd").descriptor
            module_name = "codecstream_missing_engine"

            def create_compressor(self, level):
                return self._module().Compressor(level)

        monkeypatch.setitem(_CODEC_REGISTRY, CompressionAlgorithm.ZSTD, GhostCodec)

        assert not is_algorithm_available("zstd")
        with pytest.raises(UnsupportedAlgorithmError):
            build_writer(io.BytesIO(), "zstd")


class TestEngineConstruction:
    """Tests for engine construction failures."""

    def test_bzip2_level_zero(self):
        """Test that bz2 rejects level 0 at construction."""
        with pytest.raises(CodecInitError) as exc_info:
            build_writer(io.BytesIO(), "bzip2", "level=0")

        assert exc_info.value.algorithm == "bzip2"
        assert exc_info.value.__cause__ is not None

    def test_zlib_level_too_high(self):
        """Test that zlib rejects level 12 at construction."""
        with pytest.raises(CodecInitError):
            build_writer(io.BytesIO(), "zlib", "level=12")

    def test_xz_bad_preset(self):
        """Test that lzma rejects an unknown preset."""
        with pytest.raises(CompressionError):
            build_writer(io.BytesIO(), "xz", "level=12")

    def test_build_reader_unknown_codec(self):
        """Test that readers reject unknown codecs too."""
        with pytest.raises(UnsupportedAlgorithmError):
            build_reader(io.BytesIO(b""), "nope")
