"""Bundle configuration helpers.

This module is intentionally small and "pragmatic":

- It knows the default ``wasm-pack`` output layout (``pkg/<crate>_bg.wasm`` and
  ``pkg/<crate>.js``) relative to a root directory.
- It folds optional per-path overrides on top of that layout and produces the
  exact set of knobs the bundler needs.
"""

from dataclasses import dataclass
import pathlib
import re


class ConfigError(ValueError):
    """Raised when bundle settings cannot be resolved to a usable config."""


# Downstream stores reject individual files above a few MiB; 1 MiB of base64 per
# shard keeps every emitted file well below that.
MAX_SHARD_CHARS: int = 1024 * 1024

DEFAULT_CRATE_NAME: str = "rust_rng"
DEFAULT_PKG_DIRNAME: str = "pkg"
DEFAULT_OUTPUT_DIRNAME: str = "wasm"
DEFAULT_IMPORT_NAME: str = "wasmBase64"
DEFAULT_SHARD_PREFIX: str = "shard"
DEFAULT_EXTENSION: str = "js"


@dataclass(frozen=True, slots=True)
class BundleConfig:
    """Bundle configuration.

    :ivar payload_path: Compiled ``.wasm`` module to embed.
    :ivar binding_path: Generated JS binding file, rewritten in place.
    :ivar output_dir: Directory receiving the shard modules and ``index.<ext>``.
    :ivar max_shard_chars: Upper bound on characters per shard module.
    :ivar compress: Deflate the payload before base64-encoding it.
    :ivar import_name: Local name the binding uses for the aggregated base64 string.
    :ivar shard_prefix: File name prefix for shard modules (``<prefix><N>.<ext>``).
    :ivar extension: File extension for emitted modules, without the dot.
    """

    payload_path: pathlib.Path
    binding_path: pathlib.Path
    output_dir: pathlib.Path
    max_shard_chars: int = MAX_SHARD_CHARS
    compress: bool = False
    import_name: str = DEFAULT_IMPORT_NAME
    shard_prefix: str = DEFAULT_SHARD_PREFIX
    extension: str = DEFAULT_EXTENSION


_JS_IDENT_RE: re.Pattern[str] = re.compile(r"[A-Za-z_$][A-Za-z0-9_$]*")
_CRATE_RE: re.Pattern[str] = re.compile(r"[A-Za-z0-9_\-]+")
_EXTENSION_RE: re.Pattern[str] = re.compile(r"[A-Za-z0-9]+")


def resolve_bundle_config(
    *,
    root: pathlib.Path | None = None,
    crate_name: str = DEFAULT_CRATE_NAME,
    pkg_dir_override: pathlib.Path | None = None,
    payload_override: pathlib.Path | None = None,
    binding_override: pathlib.Path | None = None,
    output_dir_override: pathlib.Path | None = None,
    max_shard_chars: int = MAX_SHARD_CHARS,
    compress: bool = False,
    import_name: str = DEFAULT_IMPORT_NAME,
) -> BundleConfig:
    """Resolve user-supplied bundle settings into a :class:`~BundleConfig`.

    Relative overrides are interpreted against ``root``.

    :param root: Base directory for the default layout. Defaults to the current directory.
    :param crate_name: Crate name used by ``wasm-pack`` to name its outputs.
    :param pkg_dir_override: Optional ``wasm-pack`` output directory override.
    :param payload_override: Optional explicit ``.wasm`` path.
    :param binding_override: Optional explicit binding ``.js`` path.
    :param output_dir_override: Optional explicit shard output directory.
    :param max_shard_chars: Upper bound on characters per shard.
    :param compress: Deflate the payload before encoding.
    :param import_name: Local name bound to the aggregated base64 string.
    :returns: Resolved bundle config.
    :raises ConfigError: If the settings are invalid.
    """

    base: pathlib.Path = root if root is not None else pathlib.Path.cwd()

    if _CRATE_RE.fullmatch(crate_name) is None:
        raise ConfigError(f"Invalid crate name {crate_name!r}; expected letters, digits, '_' or '-'.")
    # wasm-pack always writes underscores, even for hyphenated crate names.
    stem: str = crate_name.replace("-", "_")

    pkg_dir: pathlib.Path = _resolve_against(base, pkg_dir_override, pathlib.Path(DEFAULT_PKG_DIRNAME))
    payload_path: pathlib.Path = _resolve_against(base, payload_override, pkg_dir / f"{stem}_bg.wasm")
    binding_path: pathlib.Path = _resolve_against(base, binding_override, pkg_dir / f"{stem}.js")
    output_dir: pathlib.Path = _resolve_against(
        base, output_dir_override, pathlib.Path(DEFAULT_OUTPUT_DIRNAME)
    )

    config: BundleConfig = BundleConfig(
        payload_path=payload_path,
        binding_path=binding_path,
        output_dir=output_dir,
        max_shard_chars=max_shard_chars,
        compress=compress,
        import_name=import_name,
    )
    validate_bundle_config(config)
    return config


def validate_bundle_config(config: BundleConfig) -> None:
    """Validate a bundle config.

    :param config: Config to check.
    :raises ConfigError: If any field is out of range.
    """

    if config.max_shard_chars < 1:
        raise ConfigError(f"Invalid max_shard_chars={config.max_shard_chars}; expected >= 1.")
    if _JS_IDENT_RE.fullmatch(config.import_name) is None:
        raise ConfigError(f"Invalid import name {config.import_name!r}; expected a JS identifier.")
    if _JS_IDENT_RE.fullmatch(config.shard_prefix) is None:
        raise ConfigError(f"Invalid shard prefix {config.shard_prefix!r}; expected a JS identifier.")
    if _EXTENSION_RE.fullmatch(config.extension) is None:
        raise ConfigError(f"Invalid extension {config.extension!r}; expected e.g. 'js' or 'mjs'.")


def _resolve_against(
    base: pathlib.Path,
    override: pathlib.Path | None,
    default: pathlib.Path,
) -> pathlib.Path:
    """Pick ``override`` or ``default`` and anchor it to ``base`` when relative.

    :param base: Anchor directory.
    :param override: Optional user-supplied path.
    :param default: Fallback path.
    :returns: Resolved path.
    """

    chosen: pathlib.Path = override if override is not None else default
    if chosen.is_absolute() is True:
        return chosen
    return base / chosen
