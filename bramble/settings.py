"""Editor settings.

A `Settings` object holds options that were added with `add_option()`, and
also raw values from `settings.json` for options that nobody has added yet.
The values in `settings.json` override the values given in presets, so that
a user can persistently change e.g. `relativenumber` without writing a
config file.

Presets can only contain strings, booleans, integers and lists of strings,
so those are the only option types. They are also valid JSON as is.
"""
from __future__ import annotations

import copy
import dataclasses
import json
import logging
import sys
from pathlib import Path
from typing import IO, Any, TypeVar, cast

from bramble import dirs

_log = logging.getLogger(__name__)


# Let's avoid this legacy quirk:
#    >>> isinstance(True, int)
#    True
def _is_integer(x: object) -> bool:
    return isinstance(x, int) and x is not True and x is not False


def _type_check(value: object, expected_type: Any) -> bool:
    if expected_type in (str, bool):
        return isinstance(value, expected_type)
    if expected_type == int:
        return _is_integer(value)
    if expected_type == list[str]:
        return isinstance(value, list) and all(isinstance(item, str) for item in value)
    raise NotImplementedError(str(expected_type))


def type_of_value(value: object) -> Any:
    """Figure out the option type for a value that came from a preset."""
    for candidate in (bool, int, str, list[str]):
        if _type_check(value, candidate):
            return candidate
    raise TypeError(f"unsupported setting value: {value!r}")


@dataclasses.dataclass
class _KnownOption:
    type: Any
    value: object
    default_value: object


_T = TypeVar("_T")


class Settings:
    def __init__(self) -> None:
        self._unknown_options: dict[str, object] = {}
        self._known_options: dict[str, _KnownOption] = {}

    def add_option(self, option_name: str, *, type: Any, default: object) -> None:
        """Add an option to settings.

        Example:

            settings.add_option("number", type=bool, default=True)

        If `settings.json` has a value for the option, that value is used
        instead of the default, unless it has the wrong type.
        """
        if option_name in self._known_options:
            raise RuntimeError(f"there's already an option named {option_name!r}")
        if not _type_check(default, type):
            raise TypeError(f"default value {default!r} doesn't match the specified type {type!r}")

        self._known_options[option_name] = _KnownOption(type, default, default)

        if option_name not in self._unknown_options:
            return
        raw_value = self._unknown_options.pop(option_name)
        # Bad data in settings.json shouldn't stop the startup
        try:
            self.set(option_name, raw_value)
        except TypeError:
            _log.exception(
                f"setting {option_name!r} to {raw_value!r} failed, falling back to default: {default!r}"
            )

    def _get_known(self, option_name: str) -> _KnownOption:
        try:
            return self._known_options[option_name]
        except KeyError:
            raise ValueError(
                f"option {option_name!r} doesn't exist, because `add_option({option_name!r}, ...)` was not called"
            ) from None

    def set(self, option_name: str, value: object) -> None:
        """Set the value of an option."""
        option = self._get_known(option_name)
        if not _type_check(value, option.type):
            raise TypeError(
                f"value of {option_name!r} must be of type {option.type}, not {value!r}"
            )

        old_value = option.value
        option.value = copy.deepcopy(value)
        if old_value != value:
            _log.info(f"changed value of {option_name!r}: {old_value!r} --> {value!r}")

    def set_json_safe_value(self, option_name: str, json_safe_value: object) -> None:
        """Like `set()`, but the option doesn't need to be added yet."""
        if option_name in self._known_options:
            self.set(option_name, json_safe_value)
        else:
            self._unknown_options[option_name] = json_safe_value

    def get(self, option_name: str, type: type[_T]) -> _T:
        """Returns the current value of an option.

        The `type` must be the same type that was passed into `add_option()`.
        """
        option = self._get_known(option_name)
        if type != option.type:
            raise TypeError(
                f"wrong type {type!r} specified to .get(), should be {option.type} because"
                + f" the option was added with `add_option({option_name!r}, type={option.type}, ...)`"
            )
        # Mutating the result would be wrong, so let's make a copy so that mutating is pointless.
        return cast(_T, copy.deepcopy(option.value))

    def __contains__(self, option_name: str) -> bool:
        return option_name in self._known_options

    def debug_dump(self, file: IO[str] = sys.stdout) -> None:
        """Print all settings and their values. This is useful for debugging."""
        print(f"{len(self._known_options)} known options (add_option called)", file=file)
        for name, option in self._known_options.items():
            print(
                f"  {name} = {option.value!r}    (type={option.type!r}, default={option.default_value!r})",
                file=file,
            )
        print(file=file)
        print(f"{len(self._unknown_options)} unknown options (add_option not called)", file=file)
        for name, unknown_value in self._unknown_options.items():
            print(f"  {name} = {unknown_value!r}", file=file)
        print(file=file)

    def get_state(self) -> dict[str, object]:
        """Return the value that is saved to the JSON file."""
        result = self._unknown_options.copy()
        for name, option in self._known_options.items():
            if option.value != option.default_value:
                result[name] = copy.deepcopy(option.value)
        return result

    def set_state(self, state: dict[str, object]) -> None:
        """Load settings from a value that came from a JSON file."""
        for name, value in state.items():
            self.set_json_safe_value(name, value)


# Must be a function, so that it updates when tests change the dirs object
def get_json_path() -> Path:
    return dirs.user_config_path / "settings.json"


def save(settings: Settings) -> None:
    """Save the state of a `Settings` object to `settings.json`."""
    # First create string of JSON, so that writing is less likely to leave the file corrupt.
    big_string = json.dumps(settings.get_state(), indent=4) + "\n"
    get_json_path().parent.mkdir(parents=True, exist_ok=True)
    get_json_path().write_text(big_string, encoding="utf-8")


def load(settings: Settings) -> None:
    """Read `settings.json`. Errors are logged, not raised."""
    try:
        with get_json_path().open("r", encoding="utf-8") as file:
            options = json.load(file)
        if not isinstance(options, dict):
            raise TypeError(f"expected a JSON object, got {options!r}")
        settings.set_state(options)
    except FileNotFoundError:
        return
    except Exception:
        _log.exception(f"reading {get_json_path()} failed")
