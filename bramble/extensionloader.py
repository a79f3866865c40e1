"""Finds extension modules and activates them.

This file contains a lot of try/except, so that one bad extension is unlikely
to stop the whole startup. An extension that can't be activated is simply
left inactive, and the reason is stored in its `ExtensionInfo`.

An extension is a Python module (or package) on the extension search path.
It must define a function named `load()` that returns an `Extension` object:

    from bramble.extensionloader import Extension, ExtensionUnavailable

    class Frobnicator(Extension):
        def configure(self, options):
            self.loudness = options.get("loudness", 1)

        def get_actions(self):
            return {"frobnicate": self.frobnicate}

        def frobnicate(self, context):
            print("frob" * self.loudness, file=context.output)

    def load():
        if shutil.which("frob") is None:
            raise ExtensionUnavailable("frob is not installed")
        return Frobnicator()

Calling `load()` is the activation probe. It should check that whatever the
extension needs is available, and it should not change anything yet, because
configuration is applied later through `configure()`. Any exception from
`load()` makes the extension inactive.

Messages logged with severity `ERROR` or `CRITICAL` to the logger named
`bramble.extensions.<name>` during `configure()` count as errors, just like
raising an exception. Therefore you can do this:

    log = logging.getLogger(__name__)  # __name__ == "bramble.extensions.foo"

    class Foo(Extension):
        def configure(self, options):
            if not bar_is_installed:
                log.error("bar is not installed")
"""
from __future__ import annotations

import dataclasses
import enum
import importlib
import importlib.machinery
import importlib.util
import logging
import os
import pkgutil
import sys
import time
import traceback
from collections.abc import Sequence
from types import ModuleType
from typing import Any, Callable

from bramble import extensions
from bramble.actions import ActionContext

log = logging.getLogger(__name__)

ActionFunction = Callable[[ActionContext], None]


class ExtensionUnavailable(Exception):
    """Raised from `load()` when an extension can't be used in this environment."""


class Extension:
    """Base class for objects returned by the `load()` function of an extension."""

    def configure(self, options: dict[str, Any]) -> None:
        pass

    def get_actions(self) -> dict[str, ActionFunction]:
        return {}


class Status(enum.Enum):
    """This represents the status of an extension in a session."""

    # The extension is listed in the preset, but nobody has tried to activate it yet.
    DECLARED = enum.auto()

    # Activation is in progress.
    PROBING = enum.auto()

    # The extension's `load()` function returned an extension object.
    ACTIVE = enum.auto()

    # The extension wasn't activated because it's in the `disabled_extensions` setting.
    DISABLED_BY_SETTINGS = enum.auto()

    # The extension wasn't activated because it was listed in a
    # `--without-extensions` argument.
    DISABLED_ON_COMMAND_LINE = enum.auto()

    # There is no module with this name on the extension search path.
    NOT_FOUND = enum.auto()

    # Importing the extension module raised an error.
    IMPORT_FAILED = enum.auto()

    # The module was imported, but `load()` raised an error. This usually
    # means that a program or library that the extension wraps isn't installed.
    PROBE_FAILED = enum.auto()

    # The extension was activated, but `configure()` raised an exception or
    # logged an error. Its bindings are not added.
    SETUP_FAILED = enum.auto()


@dataclasses.dataclass(eq=False)
class ExtensionInfo:
    """
    This dataclass represents an extension listed in a preset.

    `error` is `None` unless `status` is `IMPORT_FAILED`, `PROBE_FAILED` or
    `SETUP_FAILED`. Then it is a Python error message or the errors that
    were logged.
    """

    name: str
    status: Status = Status.DECLARED
    error: str | None = None

    @property
    def is_active(self) -> bool:
        return self.status == Status.ACTIVE


@dataclasses.dataclass
class ActiveHandle:
    """An activated extension. Configuration and bindings go through this."""

    name: str
    extension: Extension

    def configure(self, options: dict[str, Any]) -> None:
        """Run the extension's `configure()`. Raises an error if it fails."""
        error_log: list[logging.LogRecord] = []
        logger = logging.getLogger(f"bramble.extensions.{self.name}")
        handler = logging.Handler()
        handler.setLevel(logging.ERROR)
        handler.emit = error_log.append  # type: ignore
        logger.addHandler(handler)

        start = time.perf_counter()
        try:
            log.debug(f"calling configure() of the {self.name!r} extension")
            self.extension.configure(options)
        finally:
            logger.removeHandler(handler)

        duration = time.perf_counter() - start
        log.debug("configured %s in %.3f milliseconds", self.name, duration * 1000)

        if error_log:
            raise RuntimeError(
                "".join(f"{record.levelname}: {record.getMessage()}\n" for record in error_log)
            )

    def resolve(self, action_name: str) -> ActionFunction | None:
        return self.extension.get_actions().get(action_name)


class ExtensionRegistry:
    """The extension modules that were found and imported successfully.

    Directories are searched in the given order, and the first module with a
    given name wins. The extensions that come with Bramble are searched last,
    so that they can be replaced.
    """

    def __init__(self) -> None:
        self._modules: dict[str, ModuleType] = {}
        self._import_errors: dict[str, str] = {}
        self._builtin_names: set[str] = set()

    def discover(
        self, search_path: Sequence[str | os.PathLike[str]], skip: Sequence[str] = ()
    ) -> None:
        builtin_dir = extensions.__path__[0]
        paths = [os.fspath(p) for p in search_path] + [builtin_dir]

        for finder, name, is_pkg in pkgutil.iter_modules(paths):
            if name.startswith("_") or name in self._modules or name in self._import_errors:
                continue
            if name in skip:
                log.debug(f"not importing disabled extension {name!r}")
                continue

            came_with_bramble = (
                isinstance(finder, importlib.machinery.FileFinder) and finder.path == builtin_dir
            )
            log.debug(f"trying to import extension {name!r}")
            start = time.perf_counter()
            try:
                if came_with_bramble:
                    module = importlib.import_module(f"bramble.extensions.{name}")
                else:
                    module = _import_from_finder(finder, name)
            except Exception:
                log.exception(f"can't import extension {name!r}")
                self._import_errors[name] = traceback.format_exc()
                continue

            if came_with_bramble:
                self._builtin_names.add(name)
            self._modules[name] = module
            duration = time.perf_counter() - start
            log.debug("imported extension %s in %.3f milliseconds", name, duration * 1000)

    def lookup(self, name: str) -> ModuleType | None:
        return self._modules.get(name)

    def import_error(self, name: str) -> str | None:
        return self._import_errors.get(name)

    def came_with_bramble(self, name: str) -> bool:
        return name in self._builtin_names

    def names(self) -> list[str]:
        return sorted(self._modules.keys())


def _builtin_extension_names() -> set[str]:
    return {module_info.name for module_info in pkgutil.iter_modules(extensions.__path__)}


def _import_from_finder(finder: Any, name: str) -> ModuleType:
    found = finder.find_spec(name)
    if found is None or found.origin is None:
        raise ImportError(f"cannot find {name!r} in {finder.path}")

    # same name as built-in extensions, so that `logging.getLogger(__name__)` works the same way
    spec = importlib.util.spec_from_file_location(
        f"bramble.extensions.{name}",
        found.origin,
        submodule_search_locations=found.submodule_search_locations,
    )
    assert spec is not None and spec.loader is not None
    module = importlib.util.module_from_spec(spec)

    # Relative imports look up the package from sys.modules
    shadowed = sys.modules.get(spec.name)
    for submodule_name in [key for key in sys.modules if key.startswith(spec.name + ".")]:
        del sys.modules[submodule_name]
    sys.modules[spec.name] = module
    try:
        spec.loader.exec_module(module)
    except Exception:
        sys.modules.pop(spec.name, None)
        raise
    finally:
        # A replaced built-in extension must stay importable for other sessions
        if name in _builtin_extension_names():
            if shadowed is None:
                sys.modules.pop(spec.name, None)
            else:
                sys.modules[spec.name] = shadowed
    return module


def activate(info: ExtensionInfo, registry: ExtensionRegistry) -> ActiveHandle | None:
    """Try to activate an extension. Never raises, returns None on failure."""
    assert info.status == Status.DECLARED
    info.status = Status.PROBING

    module = registry.lookup(info.name)
    if module is None:
        import_error = registry.import_error(info.name)
        if import_error is None:
            log.info(f"extension {info.name!r} not found")
            info.status = Status.NOT_FOUND
        else:
            info.status = Status.IMPORT_FAILED
            info.error = import_error
        return None

    if not hasattr(module, "load"):
        info.status = Status.PROBE_FAILED
        info.error = (
            "There is no load() function. Make sure to include a load function in your extension."
        )
        log.warning(f"Activating the {info.name!r} extension failed.\n{info.error}")
        return None

    start = time.perf_counter()
    try:
        extension = module.load()
    except ExtensionUnavailable as e:
        log.info(f"extension {info.name!r} is not available: {e}")
        info.status = Status.PROBE_FAILED
        info.error = str(e)
        return None
    except Exception:
        log.exception(f"{info.name}.load() doesn't work")
        info.status = Status.PROBE_FAILED
        info.error = traceback.format_exc()
        return None

    if not isinstance(extension, Extension):
        info.status = Status.PROBE_FAILED
        info.error = f"load() returned {extension!r}, expected an Extension object"
        log.warning(f"Activating the {info.name!r} extension failed.\n{info.error}")
        return None

    duration = time.perf_counter() - start
    log.debug("ran %s.load() in %.3f milliseconds", info.name, duration * 1000)
    info.status = Status.ACTIVE
    return ActiveHandle(info.name, extension)
