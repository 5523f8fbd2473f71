"""End-to-end tests for wasm_bundler.builder."""

import logging
import pathlib

import pytest

from conftest import read_shard_chunk
from wasm_bundler.builder import BuildError, bundle, import_specifier
from wasm_bundler.config import resolve_bundle_config
from wasm_bundler.encoder import decode_payload
from wasm_bundler.rewriter import RewriteError


def _snapshot(root):
    return {p.relative_to(root).as_posix(): p.read_bytes() for p in sorted(root.rglob("*")) if p.is_file()}


def test_bundle_writes_shards_and_rewrites_binding(wasm_pkg):
    config = resolve_bundle_config(root=wasm_pkg, max_shard_chars=4096)
    payload = config.payload_path.read_bytes()

    result = bundle(config)

    assert result.payload_bytes == len(payload)
    assert len(result.shards.shard_paths) == -(-result.encoded_chars // 4096)
    text = "".join(read_shard_chunk(p) for p in result.shards.shard_paths)
    assert decode_payload(text) == payload
    assert result.shards.index_path == wasm_pkg / "wasm" / "index.js"

    binding = config.binding_path.read_text(encoding="utf-8")
    assert binding.startswith("import wasmBase64 from '../wasm/index.js';\n")
    assert "input = fetch(input)" not in binding
    assert "instantiateStreaming" not in binding


def test_bundle_with_compression_round_trips(wasm_pkg):
    config = resolve_bundle_config(root=wasm_pkg, compress=True)
    payload = config.payload_path.read_bytes()

    result = bundle(config)

    text = "".join(read_shard_chunk(p) for p in result.shards.shard_paths)
    assert decode_payload(text, compressed=True) == payload
    assert "DecompressionStream('deflate')" in config.binding_path.read_text(encoding="utf-8")


def test_bundle_twice_is_byte_identical(wasm_pkg):
    config = resolve_bundle_config(root=wasm_pkg, max_shard_chars=1000)

    bundle(config)
    first = _snapshot(wasm_pkg)
    bundle(config)
    second = _snapshot(wasm_pkg)

    assert first == second


def test_empty_payload(wasm_pkg):
    config = resolve_bundle_config(root=wasm_pkg)
    config.payload_path.write_bytes(b"")

    result = bundle(config)

    assert result.shards.shard_paths == ()
    assert result.encoded_chars == 0
    assert result.shards.index_path.read_text(encoding="utf-8") == 'export default "";\n'


def test_missing_payload_fails_before_writing(wasm_pkg):
    config = resolve_bundle_config(root=wasm_pkg)
    config.payload_path.unlink()

    with pytest.raises(BuildError, match="wasm payload does not exist"):
        bundle(config)
    assert config.output_dir.exists() is False


def test_missing_binding_fails_before_writing(wasm_pkg):
    config = resolve_bundle_config(root=wasm_pkg)
    config.binding_path.unlink()

    with pytest.raises(BuildError, match="JS binding does not exist"):
        bundle(config)
    assert config.output_dir.exists() is False


def test_binding_without_init_is_left_untouched(wasm_pkg):
    config = resolve_bundle_config(root=wasm_pkg)
    original = config.binding_path.read_text(encoding="utf-8").replace(
        "async function init(", "async function start("
    )
    config.binding_path.write_text(original, encoding="utf-8")

    with pytest.raises(RewriteError):
        bundle(config)
    assert config.binding_path.read_text(encoding="utf-8") == original


def test_bundle_logs_progress(wasm_pkg):
    records = []

    class _Collect(logging.Handler):
        def emit(self, record):
            records.append(record.getMessage())

    logger = logging.getLogger("wasm_bundler.test")
    logger.setLevel(logging.DEBUG)
    logger.addHandler(_Collect())
    try:
        bundle(resolve_bundle_config(root=wasm_pkg), logger=logger)
    finally:
        logger.handlers.clear()

    assert any(m.startswith("wasm-bundler: payload=") for m in records)
    assert any("aggregator import specifier='../wasm/index.js'" in m for m in records)
    assert any(m.startswith("wasm-bundler: done in ") for m in records)


@pytest.mark.parametrize(
    "binding, index, expected",
    [
        ("pkg/rust_rng.js", "wasm/index.js", "../wasm/index.js"),
        ("rust_rng.js", "wasm/index.js", "./wasm/index.js"),
        ("a/b/rust_rng.js", "a/b/index.js", "./index.js"),
    ],
)
def test_import_specifier(tmp_path, binding, index, expected):
    got = import_specifier(binding_path=tmp_path / binding, index_path=tmp_path / index)
    assert got == expected


def test_import_specifier_is_posix(tmp_path):
    got = import_specifier(
        binding_path=tmp_path / "pkg" / "x.js",
        index_path=tmp_path / "out" / "wasm" / "index.js",
    )
    assert got == pathlib.PurePosixPath("..", "out", "wasm", "index.js").as_posix()
