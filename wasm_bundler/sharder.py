"""Shard writer.

Splits encoded payload text into size-bounded ES modules plus one aggregator:

- ``<prefix><N>.<ext>`` default-exports a zero-argument function returning
  chunk ``N``. Exporting a function instead of the string keeps TypeScript from
  copying the whole literal into generated ``.d.ts`` files.
- ``index.<ext>`` imports every shard and default-exports their concatenation
  in ascending index order.
"""

from dataclasses import dataclass
import logging
import pathlib
import re
import time


class ShardError(ValueError):
    """Raised when text cannot be sharded."""


@dataclass(frozen=True, slots=True)
class ShardSet:
    """Files written by :func:`write_shards`.

    :ivar shard_paths: Shard modules in index order.
    :ivar index_path: Aggregator module.
    :ivar total_chars: Length of the sharded text.
    """

    shard_paths: tuple[pathlib.Path, ...]
    index_path: pathlib.Path
    total_chars: int


INDEX_STEM: str = "index"

_BASE64_RE: re.Pattern[str] = re.compile(r"[A-Za-z0-9+/=]*")


def split_text(text: str, max_chars: int) -> list[str]:
    """Split text into consecutive chunks of at most ``max_chars`` characters.

    The last chunk may be shorter; no chunk is ever empty.

    :param text: Text to split.
    :param max_chars: Maximum chunk length.
    :returns: Chunks in original order.
    :raises ShardError: If ``max_chars`` is not positive.
    """

    if max_chars < 1:
        raise ShardError(f"Invalid max_chars={max_chars}; expected >= 1.")

    chunks: list[str] = []
    remaining: str = text
    while len(remaining) != 0:
        chunks.append(remaining[0:max_chars])
        remaining = remaining[max_chars:]
    return chunks


def shard_name(prefix: str, index: int) -> str:
    """Return the module stem for shard ``index``."""

    return f"{prefix}{index}"


def render_shard_module(chunk: str) -> str:
    """Render the ES module source for one shard.

    :param chunk: Base64 text for this shard.
    :returns: Module source.
    :raises ShardError: If ``chunk`` contains characters outside the base64 alphabet.
    """

    if _BASE64_RE.fullmatch(chunk) is None:
        raise ShardError("Shard text contains characters outside the base64 alphabet.")
    return f'export default function() {{ return "{chunk}"; }}'


def render_aggregator_module(names: list[str], extension: str) -> str:
    """Render the ES module source that reassembles all shards.

    :param names: Shard module stems in index order.
    :param extension: Module file extension, without the dot.
    :returns: Module source.
    """

    imports: str = ""
    chunks_sum: str = '""'
    for name in names:
        imports += f"import {name} from './{name}.{extension}';\n"
        chunks_sum += f" + {name}()"
    return f"{imports}export default {chunks_sum};\n"


def write_shards(
    text: str,
    output_dir: pathlib.Path,
    *,
    max_chars: int,
    prefix: str = "shard",
    extension: str = "js",
    logger: logging.Logger | None = None,
) -> ShardSet:
    """Write shard modules and the aggregator module for ``text``.

    Existing files with the same names are overwritten. Shards from an earlier
    run that produced more chunks are deleted.

    :param text: Encoded payload text.
    :param output_dir: Destination directory (created if missing).
    :param max_chars: Maximum characters per shard.
    :param prefix: Shard file name prefix.
    :param extension: Module file extension, without the dot.
    :param logger: Optional logger for progress output.
    :returns: Paths of the written files.
    :raises ShardError: If the text cannot be sharded.
    """

    if logger is None:
        logger = logging.getLogger("wasm_bundler")

    t0: float = time.perf_counter()
    chunks: list[str] = split_text(text, max_chars)
    output_dir.mkdir(parents=True, exist_ok=True)

    names: list[str] = []
    shard_paths: list[pathlib.Path] = []
    for i, chunk in enumerate(chunks):
        name: str = shard_name(prefix, i)
        path: pathlib.Path = output_dir / f"{name}.{extension}"
        path.write_text(render_shard_module(chunk), encoding="utf-8")
        names.append(name)
        shard_paths.append(path)
        if logger.isEnabledFor(logging.DEBUG) is True:
            logger.debug(f"wasm-bundler: wrote {path} ({len(chunk)} chars)")

    _remove_stale_shards(
        output_dir=output_dir,
        prefix=prefix,
        extension=extension,
        keep=len(chunks),
        logger=logger,
    )

    index_path: pathlib.Path = output_dir / f"{INDEX_STEM}.{extension}"
    index_path.write_text(render_aggregator_module(names, extension), encoding="utf-8")

    t1: float = time.perf_counter()
    logger.info(
        f"wasm-bundler: wrote {len(shard_paths)} shards + {index_path.name} to {output_dir} in {t1 - t0:.2f}s"
    )

    return ShardSet(
        shard_paths=tuple(shard_paths),
        index_path=index_path,
        total_chars=len(text),
    )


def _remove_stale_shards(
    *,
    output_dir: pathlib.Path,
    prefix: str,
    extension: str,
    keep: int,
    logger: logging.Logger,
) -> None:
    """Delete ``<prefix><N>.<ext>`` files with ``N >= keep``.

    :param output_dir: Shard directory.
    :param prefix: Shard file name prefix.
    :param extension: Module file extension, without the dot.
    :param keep: Number of shards written by the current run.
    :param logger: Logger for progress output.
    """

    pattern: re.Pattern[str] = re.compile(rf"{re.escape(prefix)}(\d+)\.{re.escape(extension)}")
    for path in sorted(output_dir.iterdir()):
        m = pattern.fullmatch(path.name)
        if m is None or path.is_file() is False:
            continue
        if int(m.group(1)) < keep:
            continue
        path.unlink()
        logger.info(f"wasm-bundler: removed stale shard {path}")
