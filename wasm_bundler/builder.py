"""Bundle builder.

This module implements the whole packaging step, strictly in order:

- Read the compiled ``.wasm`` payload and base64-encode it.
- Split the encoded text into shard modules plus an ``index`` aggregator.
- Rewrite the generated JS binding so it imports the aggregator instead of
  fetching the ``.wasm`` file, and overwrite the binding in place.

Every output is fully rewritten on each run, so re-running after an
interrupted build is the recovery path.
"""

from dataclasses import dataclass
import logging
import os
import pathlib
import time

from wasm_bundler.config import BundleConfig, validate_bundle_config
from wasm_bundler.encoder import encode_payload
from wasm_bundler.rewriter import rewrite_binding
from wasm_bundler.sharder import ShardSet, write_shards


class BuildError(RuntimeError):
    """Raised when bundling fails."""


@dataclass(frozen=True, slots=True)
class BundleResult:
    """Summary of a finished bundle run.

    :ivar shards: Shard and aggregator files written.
    :ivar binding_path: Binding file that was rewritten.
    :ivar payload_bytes: Size of the raw payload.
    :ivar encoded_chars: Length of the encoded payload text.
    """

    shards: ShardSet
    binding_path: pathlib.Path
    payload_bytes: int
    encoded_chars: int


def bundle(config: BundleConfig, *, logger: logging.Logger | None = None) -> BundleResult:
    """Encode, shard, and rewire a ``wasm-pack`` build.

    :param config: Bundle configuration.
    :param logger: Optional logger for realtime build progress output.
    :returns: Summary of the written artifacts.
    :raises BuildError: If an input file is missing.
    """

    if logger is None:
        logger = logging.getLogger("wasm_bundler")

    validate_bundle_config(config)
    _require_file(config.payload_path, what="wasm payload")
    _require_file(config.binding_path, what="JS binding")

    t_total0: float = time.perf_counter()
    logger.info(f"wasm-bundler: payload={config.payload_path}")
    logger.info(f"wasm-bundler: binding={config.binding_path}")
    logger.info(f"wasm-bundler: output_dir={config.output_dir}")
    logger.info(
        f"wasm-bundler: max_shard_chars={config.max_shard_chars} compress={config.compress}"
    )

    payload: bytes = config.payload_path.read_bytes()

    t_enc0: float = time.perf_counter()
    encoded: str = encode_payload(payload, compress=config.compress)
    t_enc1: float = time.perf_counter()
    logger.info(
        f"wasm-bundler: encoded {len(payload) / (1024 * 1024):.1f} MiB payload "
        f"into {len(encoded)} chars in {t_enc1 - t_enc0:.2f}s"
    )

    shards: ShardSet = write_shards(
        encoded,
        config.output_dir,
        max_chars=config.max_shard_chars,
        prefix=config.shard_prefix,
        extension=config.extension,
        logger=logger,
    )

    specifier: str = import_specifier(binding_path=config.binding_path, index_path=shards.index_path)
    if logger.isEnabledFor(logging.DEBUG) is True:
        logger.debug(f"wasm-bundler: aggregator import specifier={specifier!r}")

    t_rw0: float = time.perf_counter()
    source: str = config.binding_path.read_text(encoding="utf-8")
    rewritten: str = rewrite_binding(
        source,
        import_name=config.import_name,
        import_specifier=specifier,
        compressed=config.compress,
    )
    config.binding_path.write_text(rewritten, encoding="utf-8")
    t_rw1: float = time.perf_counter()
    logger.info(f"wasm-bundler: rewrote {config.binding_path} in {t_rw1 - t_rw0:.2f}s")

    t_total1: float = time.perf_counter()
    logger.info(f"wasm-bundler: done in {t_total1 - t_total0:.2f}s")

    return BundleResult(
        shards=shards,
        binding_path=config.binding_path,
        payload_bytes=len(payload),
        encoded_chars=len(encoded),
    )


def import_specifier(*, binding_path: pathlib.Path, index_path: pathlib.Path) -> str:
    """Compute the ES module specifier for the aggregator, relative to the binding.

    :param binding_path: Binding file that will contain the import.
    :param index_path: Aggregator module.
    :returns: Specifier such as ``./wasm/index.js`` or ``../wasm/index.js``.
    """

    rel: str = os.path.relpath(index_path, binding_path.parent)
    posix: str = pathlib.PurePath(rel).as_posix()
    if posix.startswith("../") is True or posix.startswith("./") is True:
        return posix
    return f"./{posix}"


def _require_file(path: pathlib.Path, *, what: str) -> None:
    """Fail before writing anything if an input file is missing.

    :param path: Input path.
    :param what: Human-readable description for the error message.
    :raises BuildError: If ``path`` is not a file.
    """

    if path.exists() is False:
        raise BuildError(f"{what} does not exist: {path}")
    if path.is_file() is False:
        raise BuildError(f"{what} path is not a file: {path}")
