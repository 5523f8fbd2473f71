"""wasm-bundler.

A small build utility that embeds a ``wasm-pack`` build into sharded base64 JS
modules and rewires the generated binding to load the module from them.
"""

__all__: list[str] = ["__version__"]

__version__: str = "0.1.0"
