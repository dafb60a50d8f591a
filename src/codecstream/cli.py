"""Command-line interface for codecstream."""

import logging
import shutil
from pathlib import Path
from typing import Annotated, Optional

import typer

from codecstream.api import compressed_writer, decompressed_reader
from codecstream.base import CompressionAlgorithm, CompressionError, StreamConfig
from codecstream.providers import describe_codecs

app = typer.Typer(
    name="codecstream",
    help="Streaming compression and decompression behind one interface",
    add_completion=False,
)

DEFAULT_CODEC = CompressionAlgorithm.ZSTD

logger = logging.getLogger(__name__)


def _configure_logging(verbose: bool) -> None:
    if verbose:
        logging.basicConfig(
            level=logging.DEBUG,
            format="%(asctime)s %(name)s %(levelname)s %(message)s",
        )


def _discard(path: Path) -> None:
    """Remove a partially written output file."""
    try:
        path.unlink(missing_ok=True)
    except OSError:
        logger.warning("Could not remove partial output %s", path, exc_info=True)


@app.command(name="compress")
def compress_cmd(
    file: Annotated[Path, typer.Argument(help="File to compress")],
    output: Annotated[
        Optional[Path],
        typer.Option("--output", "-o", help="Output path (default: FILE + codec extension)"),
    ] = None,
    codec: Annotated[
        Optional[str],
        typer.Option("--codec", "-c", help="Codec name (default: from output extension, else zstd)"),
    ] = None,
    params: Annotated[
        str,
        typer.Option("--params", "-p", help="Parameter string, e.g. 'level=3'"),
    ] = "",
    verbose: Annotated[
        bool,
        typer.Option("--verbose", "-v", help="Enable debug logging"),
    ] = False,
) -> None:
    """Compress a file."""
    _configure_logging(verbose)
    if not file.exists():
        typer.echo(f"Error: File not found: {file}", err=True)
        raise typer.Exit(1)

    try:
        if codec is not None:
            algorithm = CompressionAlgorithm.from_name(codec)
        elif output is not None and output.suffix:
            algorithm = CompressionAlgorithm.from_extension(output.suffix)
            if algorithm is CompressionAlgorithm.NONE:
                algorithm = DEFAULT_CODEC
        else:
            algorithm = DEFAULT_CODEC
        target = output or file.with_name(file.name + algorithm.extension)
        if target == file:
            typer.echo(f"Error: Output would overwrite input: {file}", err=True)
            raise typer.Exit(1)

        config = StreamConfig.from_env()
        with file.open("rb") as src:
            dst = target.open("wb")
            try:
                with dst, compressed_writer(dst, algorithm, params, config=config) as writer:
                    shutil.copyfileobj(src, writer, config.chunk_size)
                    metrics = writer.metrics
            except BaseException:
                _discard(target)
                raise
        typer.echo(f"Compressed {file} -> {target} ({algorithm.value})")
        typer.echo(f"  {metrics.bytes_in:,} bytes -> {metrics.bytes_out:,} bytes")
    except (CompressionError, OSError) as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)


@app.command(name="decompress")
def decompress_cmd(
    file: Annotated[Path, typer.Argument(help="File to decompress")],
    output: Annotated[
        Optional[Path],
        typer.Option("--output", "-o", help="Output path (default: FILE without its extension)"),
    ] = None,
    codec: Annotated[
        Optional[str],
        typer.Option("--codec", "-c", help="Codec name (default: from file extension)"),
    ] = None,
    verbose: Annotated[
        bool,
        typer.Option("--verbose", "-v", help="Enable debug logging"),
    ] = False,
) -> None:
    """Decompress a file."""
    _configure_logging(verbose)
    if not file.exists():
        typer.echo(f"Error: File not found: {file}", err=True)
        raise typer.Exit(1)

    try:
        if codec is not None:
            algorithm = CompressionAlgorithm.from_name(codec)
        else:
            algorithm = CompressionAlgorithm.from_extension(file.suffix)
        if output is not None:
            target = output
        elif algorithm.extension and file.suffix.lower() == algorithm.extension:
            target = file.with_suffix("")
        else:
            target = file.with_name(file.name + ".out")
        if target == file:
            typer.echo(f"Error: Output would overwrite input: {file}", err=True)
            raise typer.Exit(1)

        config = StreamConfig.from_env()
        with file.open("rb") as src:
            dst = target.open("wb")
            try:
                with dst, decompressed_reader(src, algorithm, config=config) as reader:
                    shutil.copyfileobj(reader, dst, config.chunk_size)
            except BaseException:
                _discard(target)
                raise
        typer.echo(f"Decompressed {file} -> {target} ({algorithm.value})")
    except (CompressionError, OSError) as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)


@app.command(name="codecs")
def codecs_cmd() -> None:
    """List supported codecs and their parameters."""
    for info in describe_codecs():
        status = "available" if info["available"] else "not installed"
        typer.echo(f"{info['algorithm']:<8} {info['description']} [{status}]")
        typer.echo(f"  aliases: {', '.join(info['aliases'])}")
        for param in info["parameters"]:
            typer.echo(f"  {param}")


def main() -> None:
    app()


if __name__ == "__main__":
    main()
