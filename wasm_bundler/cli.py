"""Command line interface for wasm-bundler."""

import argparse
import logging
import pathlib
import sys

from wasm_bundler.builder import bundle
from wasm_bundler.config import (
    DEFAULT_CRATE_NAME,
    DEFAULT_IMPORT_NAME,
    MAX_SHARD_CHARS,
    BundleConfig,
    resolve_bundle_config,
)


def _configure_logging(*, verbose: int, quiet: int) -> logging.Logger:
    """Configure the wasm-bundler logger.

    :param verbose: Verbosity count (0+).
    :param quiet: Quietness count (0+).
    :returns: Configured logger.
    """

    level: int = logging.INFO
    if quiet >= 2:
        level = logging.ERROR
    elif quiet >= 1:
        level = logging.WARNING
    elif verbose >= 1:
        level = logging.DEBUG

    logger: logging.Logger = logging.getLogger("wasm_bundler")
    logger.setLevel(level)
    logger.propagate = False

    handler: logging.Handler = logging.StreamHandler(stream=sys.stderr)
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter("%(message)s"))

    logger.handlers.clear()
    logger.addHandler(handler)
    return logger


def main(argv: list[str] | None = None) -> int:
    """Run the wasm-bundler CLI.

    :param argv: Optional argv list (excluding program name).
    :returns: Exit code.
    """

    parser: argparse.ArgumentParser = argparse.ArgumentParser(
        prog="wasm-bundler",
        description=(
            "Embed a wasm-pack build as sharded base64 JS modules and rewire its binding to load them."
        ),
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    p_bundle = subparsers.add_parser(
        "bundle",
        help="Shard the .wasm payload and rewrite the JS binding in place.",
    )
    p_bundle.add_argument(
        "--root",
        type=pathlib.Path,
        default=None,
        help="Directory the default layout is resolved against (defaults to the current directory).",
    )
    p_bundle.add_argument(
        "--crate",
        type=str,
        default=DEFAULT_CRATE_NAME,
        help="Crate name used by wasm-pack for <crate>_bg.wasm and <crate>.js.",
    )
    p_bundle.add_argument(
        "--pkg-dir",
        type=pathlib.Path,
        default=None,
        help="wasm-pack output directory (defaults to <root>/pkg).",
    )
    p_bundle.add_argument(
        "--payload",
        type=pathlib.Path,
        default=None,
        help="Explicit .wasm path (overrides --crate/--pkg-dir).",
    )
    p_bundle.add_argument(
        "--binding",
        type=pathlib.Path,
        default=None,
        help="Explicit JS binding path, rewritten in place (overrides --crate/--pkg-dir).",
    )
    p_bundle.add_argument(
        "-o",
        "--output-dir",
        type=pathlib.Path,
        default=None,
        help="Directory for shard modules and index.js (defaults to <root>/wasm).",
    )
    p_bundle.add_argument(
        "--max-shard-chars",
        type=int,
        default=MAX_SHARD_CHARS,
        help="Maximum characters per shard module.",
    )
    p_bundle.add_argument(
        "--compress",
        action="store_true",
        help="Deflate the payload before base64-encoding it (inflated at load time).",
    )
    p_bundle.add_argument(
        "--import-name",
        type=str,
        default=DEFAULT_IMPORT_NAME,
        help="Local name the binding uses for the aggregated base64 string.",
    )
    p_bundle.add_argument(
        "-v",
        "--verbose",
        action="count",
        default=0,
        help="Enable verbose logging. Pass multiple times for more detail.",
    )
    p_bundle.add_argument(
        "-q",
        "--quiet",
        action="count",
        default=0,
        help="Reduce logging. Pass multiple times to suppress more output.",
    )

    ns = parser.parse_args(argv)
    if ns.command == "bundle":
        logger: logging.Logger = _configure_logging(verbose=ns.verbose, quiet=ns.quiet)
        config: BundleConfig = resolve_bundle_config(
            root=ns.root,
            crate_name=ns.crate,
            pkg_dir_override=ns.pkg_dir,
            payload_override=ns.payload,
            binding_override=ns.binding,
            output_dir_override=ns.output_dir,
            max_shard_chars=ns.max_shard_chars,
            compress=ns.compress,
            import_name=ns.import_name,
        )

        bundle(config, logger=logger)
        return 0

    raise AssertionError(f"Unhandled command: {ns.command}")
