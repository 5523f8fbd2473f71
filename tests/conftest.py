"""Shared fixtures for the wasm_bundler test suite.

The binding fixture mirrors the shape ``wasm-bindgen`` emits for
``--target web``: a ``load`` helper that instantiates from a ``Response`` or
buffer, and an ``init`` whose third statement turns a URL into ``fetch()``.
"""

import pathlib

import pytest


SAMPLE_BINDING: str = r"""let wasm;

const cachedTextDecoder = new TextDecoder('utf-8', { ignoreBOM: true, fatal: true });

cachedTextDecoder.decode();

/**
* @returns {number}
*/
export function next_u32() {
    const ret = wasm.next_u32();
    return ret >>> 0;
}

async function load(module, imports) {
    if (typeof Response === 'function' && module instanceof Response) {
        if (typeof WebAssembly.instantiateStreaming === 'function') {
            try {
                return await WebAssembly.instantiateStreaming(module, imports);

            } catch (e) {
                if (module.headers.get('Content-Type') != 'application/wasm') {
                    console.warn("`WebAssembly.instantiateStreaming` failed. Falling back to `WebAssembly.instantiate`:\n", e);

                } else {
                    throw e;
                }
            }
        }

        const bytes = await module.arrayBuffer();
        return await WebAssembly.instantiate(bytes, imports);

    } else {
        const instance = await WebAssembly.instantiate(module, imports);

        if (instance instanceof WebAssembly.Instance) {
            return { instance, module };

        } else {
            return instance;
        }
    }
}

function getImports() {
    const imports = {};
    imports.wbg = {};
    imports.wbg.__wbindgen_throw = function(arg0, arg1) {
        throw new Error(`wasm error ${arg0} ${arg1}`);
    };
    return imports;
}

function finalizeInit(instance, module) {
    wasm = instance.exports;
    init.__wbindgen_wasm_module = module;
    return wasm;
}

async function init(input) {
    if (typeof input === 'undefined') {
        input = new URL('rust_rng_bg.wasm', import.meta.url);
    }
    const imports = getImports();

    if (typeof input === 'string' || (typeof Request === 'function' && input instanceof Request) || (typeof URL === 'function' && input instanceof URL)) {
        input = fetch(input);
    }

    const { instance, module } = await load(await input, imports);

    return finalizeInit(instance, module);
}

export default init;
"""


@pytest.fixture
def sample_binding() -> str:
    """Generated binding source as emitted by wasm-bindgen."""
    return SAMPLE_BINDING


@pytest.fixture
def wasm_pkg(tmp_path: pathlib.Path) -> pathlib.Path:
    """A ``wasm-pack`` style project root with ``pkg/rust_rng{_bg.wasm,.js}``."""
    pkg_dir = tmp_path / "pkg"
    pkg_dir.mkdir()
    # "\0asm" magic + version, followed by filler; contents are opaque to the bundler.
    payload = b"\x00asm\x01\x00\x00\x00" + bytes(range(256)) * 40
    (pkg_dir / "rust_rng_bg.wasm").write_bytes(payload)
    (pkg_dir / "rust_rng.js").write_text(SAMPLE_BINDING, encoding="utf-8")
    return tmp_path


def read_shard_chunk(path: pathlib.Path) -> str:
    """Extract the string literal returned by a shard module."""
    text = path.read_text(encoding="utf-8")
    prefix = 'export default function() { return "'
    suffix = '"; }'
    assert text.startswith(prefix) and text.endswith(suffix), text[:80]
    return text[len(prefix) : len(text) - len(suffix)]
