"""The startup sequence, and the `Session` object that it produces.

Startup goes like this, one step at a time:

1. Settings from the preset (and `settings.json`) are applied.
2. The manager is downloaded if it isn't on disk yet. This is the only
   step that can make the startup fail.
3. Extension modules are found and imported.
4. For each extension in the preset, in order: activate it, and if that
   worked, configure it and add its key bindings.
5. Language servers are set up with the capabilities of the active extensions,
   and snippets are connected to completion.
6. Global key bindings are added.

Everything ends up in a `Session`. Nothing is global, so running the
startup twice gives two independent sessions.
"""
from __future__ import annotations

import enum
import logging
import traceback
from collections.abc import Sequence
from pathlib import Path

from bramble import bootstrap, dirs, settings
from bramble.actions import ActionContext, ActionRef, BuiltinAction, ExtensionAction, parse_action
from bramble.config import BindingSpec, ExtensionDescriptor, StartupConfig
from bramble.diagnostics import DiagnosticsConfig, builtin_actions, config_from_dict
from bramble.extensionloader import (
    ActionFunction,
    ActiveHandle,
    ExtensionInfo,
    ExtensionRegistry,
    Status,
    activate,
)
from bramble.extensions.langserver import Langserver, ServerSetup, default_capabilities
from bramble.keymap import Binding, Keymap

log = logging.getLogger(__name__)


class Known(enum.Enum):
    """Extensions that other parts of the startup need to know about."""

    FUZZY_FINDER = "fuzzy_finder"
    SYNTAX_TREE = "syntax_tree"
    SNIPPETS = "snippets"
    COMPLETION = "completion"
    LANGSERVER = "langserver"
    COLORSCHEME = "colorscheme"


# what pressing a key does when nothing is bound to it, in insert and select modes
_KEY_TEXT = {"<Tab>": "\t", "<CR>": "\n", "<Space>": " ", "<lt>": "<"}


def get_user_extensions_dir() -> Path:
    return dirs.user_config_path / "extensions"


class Session:
    def __init__(
        self,
        config: StartupConfig,
        registry: ExtensionRegistry,
        *,
        disabled_on_command_line: Sequence[str] = (),
    ) -> None:
        self.config = config
        self.registry = registry
        self.settings = settings.Settings()
        self.keymap = Keymap()
        self.infos = {descriptor.name: ExtensionInfo(descriptor.name) for descriptor in config.extensions}
        self.language_servers: dict[str, ServerSetup] = {}
        self.diagnostics_config: DiagnosticsConfig | None = None
        self._disabled_on_command_line = set(disabled_on_command_line)
        self._handles: dict[str, ActiveHandle | None] = {}

    def apply_settings(self) -> None:
        settings.load(self.settings)
        for name, value in self.config.options.items():
            try:
                option_type = settings.type_of_value(value)
            except TypeError:
                log.exception(f"ignoring option {name!r}")
                continue
            self.settings.add_option(name, type=option_type, default=value)

        if "disabled_extensions" not in self.settings:
            self.settings.add_option("disabled_extensions", type=list[str], default=[])
        if "mapleader" in self.settings:
            self.keymap.leader = self.settings.get("mapleader", str)

    def get_disabled_names(self) -> set[str]:
        return set(self.settings.get("disabled_extensions", list[str])) | self._disabled_on_command_line

    def handle(self, name: str | Known) -> ActiveHandle | None:
        """Activate an extension if it hasn't been done yet, and return its handle.

        Returns None for extensions that aren't active, including extensions
        that aren't listed in the preset at all.
        """
        if isinstance(name, Known):
            name = name.value
        if name in self._handles:
            return self._handles[name]

        info = self.infos.get(name)
        if info is None:
            return None

        # If disabled in both places, DISABLED_BY_SETTINGS makes more sense for the user
        handle: ActiveHandle | None
        if name in self.settings.get("disabled_extensions", list[str]):
            info.status = Status.DISABLED_BY_SETTINGS
            handle = None
        elif name in self._disabled_on_command_line:
            info.status = Status.DISABLED_ON_COMMAND_LINE
            handle = None
        else:
            handle = activate(info, self.registry)

        self._handles[name] = handle
        return handle

    def _configure(self, handle: ActiveHandle, descriptor: ExtensionDescriptor) -> bool:
        info = self.infos[handle.name]
        try:
            handle.configure(descriptor.options)
        except Exception:
            log.exception(f"configuring the {handle.name!r} extension failed")
            info.status = Status.SETUP_FAILED
            info.error = traceback.format_exc()
            self._handles[handle.name] = None
            return False
        return True

    def _add_binding(self, spec: BindingSpec, owner: str | None) -> list[Binding]:
        try:
            action = parse_action(spec.action, owner)
        except ValueError as e:
            log.error(f"bad binding for {spec.keys!r}: {e}")
            return []

        if self.resolve(action) is None:
            log.error(f"binding {spec.keys!r} refers to {action}, but there is no such action")
            return []

        try:
            return self.keymap.set(
                spec.modes,
                spec.keys,
                action,
                description=spec.description,
                owner=owner,
                buffer_local=spec.buffer_local,
            )
        except ValueError as e:
            log.error(f"bad binding for {spec.keys!r}: {e}")
            return []

    def _setup_language_servers(self, langserver: Langserver, on_attach: list[Binding]) -> None:
        capabilities = default_capabilities()
        # Any extension named completion can contribute, not just the built-in one
        completion = self.handle(Known.COMPLETION)
        if completion is not None and hasattr(completion.extension, "contribute_capabilities"):
            capabilities = completion.extension.contribute_capabilities(capabilities)
        else:
            log.debug("completion is not active, language servers get default capabilities")

        shared = langserver.make_shared_config(capabilities, on_attach)
        for name in langserver.server_names:
            setup = langserver.setup_server(name, shared)
            if setup is not None:
                self.language_servers[name] = setup

    def load_extensions(self) -> None:
        on_attach: list[Binding] = []
        for descriptor in self.config.extensions:
            handle = self.handle(descriptor.name)
            if handle is None:
                log.debug(f"skipping inactive extension {descriptor.name!r}")
                continue
            if not self._configure(handle, descriptor):
                continue

            added = []
            for spec in descriptor.bindings:
                added.extend(self._add_binding(spec, descriptor.name))
            if descriptor.name == Known.LANGSERVER.value:
                on_attach = [b for b in added if b.buffer_local]

        # Only extensions that are still active after configure() contribute capabilities
        langserver = self.handle(Known.LANGSERVER)
        if langserver is not None and hasattr(langserver.extension, "setup_server"):
            self._setup_language_servers(langserver.extension, on_attach)
            self.diagnostics_config = config_from_dict(self.config.diagnostics)

        completion = self.handle(Known.COMPLETION)
        if completion is not None and hasattr(completion.extension, "use_snippets"):
            snippets = self.handle(Known.SNIPPETS)
            if snippets is not None:
                completion.extension.use_snippets(snippets.extension)

        for spec in self.config.bindings:
            self._add_binding(spec, None)

    def resolve(self, action: ActionRef) -> ActionFunction | None:
        if isinstance(action, BuiltinAction):
            return builtin_actions.get(action.name)

        assert isinstance(action, ExtensionAction)
        handle = self._handles.get(action.extension)
        if handle is None:
            return None
        return handle.resolve(action.name)

    def help_topics(self) -> dict[str, str]:
        return {
            f"{binding.trigger.mode} {binding.trigger.keys}": binding.description
            or str(binding.action)
            for binding in self.keymap
        }

    def press(self, mode: str, keys: str, context: ActionContext) -> bool:
        """Run the action bound to keys. Returns False if nothing is bound."""

        def fallback() -> None:
            if mode in {"i", "s"}:
                text = _KEY_TEXT.get(keys, keys if len(keys) == 1 else "")
                context.buffer.insert(text)

        context.fallback = fallback
        context.help_topics = self.help_topics()
        if context.diagnostics_config is None:
            context.diagnostics_config = self.diagnostics_config

        binding = self.keymap.get(mode, keys)
        if binding is None:
            log.debug(f"nothing bound to {keys!r} in mode {mode!r}")
            fallback()
            return False

        function = self.resolve(binding.action)
        assert function is not None, binding
        log.debug(f"running {binding.action} for {keys!r}")
        function(context)
        return True


def run(
    config: StartupConfig,
    *,
    skip_bootstrap: bool = False,
    disabled_on_command_line: Sequence[str] = (),
    extra_search_path: Sequence[Path] = (),
) -> Session:
    """Run the startup sequence. Raises `bootstrap.BootstrapError` if the manager can't be installed."""
    registry = ExtensionRegistry()
    session = Session(config, registry, disabled_on_command_line=disabled_on_command_line)
    session.apply_settings()

    search_path: list[Path] = list(extra_search_path)
    if skip_bootstrap:
        log.info("not installing anything because bootstrapping was skipped")
        if config.bootstrap.get_path().exists():
            search_path.append(config.bootstrap.get_path())
    else:
        search_path.append(bootstrap.ensure_manager(config.bootstrap))
        search_path.extend(bootstrap.install_sources(config.install, config.bootstrap.method))
    search_path.append(get_user_extensions_dir())

    registry.discover(search_path, skip=sorted(session.get_disabled_names()))
    session.load_extensions()

    active = [name for name, info in session.infos.items() if info.is_active]
    log.info(f"{len(active)} of {len(session.infos)} extensions active: {', '.join(active)}")
    return session
