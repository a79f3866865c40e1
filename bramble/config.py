"""Everything related to presets and config.toml."""
from __future__ import annotations

import dataclasses
import logging
from pathlib import Path
from typing import Any, Optional

import dacite
import tomli

from bramble import dirs

log = logging.getLogger(__name__)

PRESETS_DIR = Path(__file__).absolute().parent / "presets"

_USER_CONFIG_TEMPLATE = """\
# This file is merged on top of the preset that Bramble uses. For example,
# this turns on relative line numbers and adds a binding:
#
#    [options]
#    relativenumber = true
#
#    [[bindings]]
#    keys = "<leader>d"
#    action = "builtin:diagnostic_goto_next"
#
# Tables are merged, lists are concatenated. You can read the presets here:
#
#    https://github.com/Akuli/bramble/tree/main/bramble/presets
"""


class ConfigError(Exception):
    """The configuration is unusable. Shown to the user without a traceback."""


@dataclasses.dataclass
class BindingSpec:
    keys: str
    action: str
    modes: list[str] = dataclasses.field(default_factory=lambda: ["n"])
    description: str = ""
    buffer_local: bool = False


@dataclasses.dataclass
class ExtensionDescriptor:
    name: str
    options: dict[str, Any] = dataclasses.field(default_factory=dict)
    bindings: list[BindingSpec] = dataclasses.field(default_factory=list)


@dataclasses.dataclass
class BootstrapConfig:
    url: str
    branch: str = "stable"
    method: str = "git"
    path: Optional[str] = None

    def get_path(self) -> Path:
        if self.path is None:
            return dirs.user_data_path / "manager"
        return Path(self.path).expanduser()


@dataclasses.dataclass
class ExtensionSource:
    name: str
    url: str
    branch: Optional[str] = None
    build: Optional[list[str]] = None


@dataclasses.dataclass
class StartupConfig:
    bootstrap: BootstrapConfig
    options: dict[str, Any] = dataclasses.field(default_factory=dict)
    extensions: list[ExtensionDescriptor] = dataclasses.field(default_factory=list)
    bindings: list[BindingSpec] = dataclasses.field(default_factory=list)
    install: list[ExtensionSource] = dataclasses.field(default_factory=list)
    diagnostics: dict[str, Any] = dataclasses.field(default_factory=dict)


# Sometimes dynamic typing is awesome
def merge_settings(default: object, user: object) -> Any:
    if isinstance(default, list) and isinstance(user, list):
        return default + user
    if isinstance(default, dict) and isinstance(user, dict):
        # If a key is in only one of the dicts, include as is.
        # Recurse for keys in both dicts.
        result = {**default, **user}
        for common_key in default.keys() & user.keys():
            result[common_key] = merge_settings(default[common_key], user[common_key])
        return result
    return user


def get_preset_names() -> list[str]:
    return sorted(path.stem for path in PRESETS_DIR.glob("*.toml"))


def load_preset(name: str, *, _seen: tuple[str, ...] = ()) -> dict[str, Any]:
    """Read a preset and the presets it is based on, merged together."""
    if name in _seen:
        loop = " -> ".join(_seen + (name,))
        raise ConfigError(f"presets are based on each other in a loop: {loop}")

    path = PRESETS_DIR / f"{name}.toml"
    try:
        with path.open("rb") as file:
            preset = tomli.load(file)
    except FileNotFoundError:
        raise ConfigError(
            f"no preset named {name!r}, available presets are: " + ", ".join(get_preset_names())
        ) from None

    base_name = preset.pop("base", None)
    if base_name is None:
        return preset
    return merge_settings(load_preset(base_name, _seen=_seen + (name,)), preset)


# Must be a function, so that it updates when tests change the dirs object
def get_user_config_path() -> Path:
    return dirs.user_config_path / "config.toml"


def _read_user_config() -> dict[str, Any]:
    user_path = get_user_config_path()
    try:
        with user_path.open("rb") as user_file:
            return tomli.load(user_file)
    except FileNotFoundError:
        log.info(f"'{user_path}' not found, creating")
        user_path.parent.mkdir(parents=True, exist_ok=True)
        with user_path.open("x") as file:  # error if exists
            file.write(_USER_CONFIG_TEMPLATE)
    except (OSError, UnicodeError, tomli.TOMLDecodeError):
        log.exception(f"reading '{user_path}' failed, using the preset as is")
    return {}


def _read_explicit_config(path: Path) -> dict[str, Any]:
    try:
        with path.open("rb") as file:
            return tomli.load(file)
    except (OSError, UnicodeError, tomli.TOMLDecodeError) as e:
        raise ConfigError(f"reading '{path}' failed: {e}") from e


def _merge_duplicate_extensions(extensions: list[Any]) -> list[Any]:
    # This way config.toml can add bindings or options to an extension of the preset.
    # The extension stays where the preset put it.
    by_name: dict[object, Any] = {}
    for descriptor in extensions:
        name = descriptor.get("name") if isinstance(descriptor, dict) else None
        if name is not None and name in by_name:
            by_name[name] = merge_settings(by_name[name], descriptor)
        else:
            by_name[name if name is not None else id(descriptor)] = descriptor
    return list(by_name.values())


def load_config(preset_name: str = "default", config_path: Path | None = None) -> StartupConfig:
    """Load a preset and merge the user's config file on top of it.

    If `config_path` is given, that file is used instead of the user's
    `config.toml`, and errors in it are not ignored.
    """
    raw = load_preset(preset_name)
    if config_path is None:
        user_config = _read_user_config()
    else:
        user_config = _read_explicit_config(config_path)
    raw = merge_settings(raw, user_config)
    raw["extensions"] = _merge_duplicate_extensions(raw.get("extensions", []))

    try:
        return dacite.from_dict(StartupConfig, raw, config=dacite.Config(strict=True))
    except dacite.DaciteError as e:
        raise ConfigError(f"bad configuration: {e}") from e
