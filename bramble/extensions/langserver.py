"""Language server setup.

This extension decides which language servers can be started and with what
settings. It doesn't speak the language server protocol itself. When you
press e.g. `gd`, a request is queued into the action context and the host
sends it to the servers attached to the buffer.
"""
from __future__ import annotations

import dataclasses
import logging
import shutil
from typing import Any

from bramble.actions import ActionContext
from bramble.extensionloader import ActionFunction, Extension
from bramble.keymap import Binding

log = logging.getLogger(__name__)

KNOWN_SERVERS: dict[str, list[str]] = {
    "lua_ls": ["lua-language-server"],
    "gopls": ["gopls"],
    "pyright": ["pyright-langserver", "--stdio"],
    "tsserver": ["typescript-language-server", "--stdio"],
    "rust_analyzer": ["rust-analyzer"],
}


def default_capabilities() -> dict[str, Any]:
    """Client capabilities sent to servers when no other extension adds anything."""
    return {
        "textDocument": {
            "synchronization": {"didSave": True, "dynamicRegistration": False},
            "hover": {"contentFormat": ["markdown", "plaintext"]},
            "definition": {"linkSupport": True},
            "declaration": {"linkSupport": True},
            "implementation": {"linkSupport": True},
            "references": {},
            "rename": {"prepareSupport": True},
            "codeAction": {"isPreferredSupport": True},
            "publishDiagnostics": {"relatedInformation": True},
            "completion": {"completionItem": {"snippetSupport": False}},
        },
        "workspace": {"configuration": True, "workspaceFolders": True},
    }


@dataclasses.dataclass
class SharedServerConfig:
    """The same object is given to every server that gets set up."""

    debounce_text_changes: int
    capabilities: dict[str, Any]
    on_attach: list[Binding]


@dataclasses.dataclass
class ServerSetup:
    name: str
    command: list[str]
    shared: SharedServerConfig


_REQUESTS = {
    "definition": "textDocument/definition",
    "references": "textDocument/references",
    "declaration": "textDocument/declaration",
    "implementation": "textDocument/implementation",
    "hover": "textDocument/hover",
    "rename": "textDocument/rename",
    "code_action": "textDocument/codeAction",
}


class Langserver(Extension):
    def __init__(self) -> None:
        self.server_names: list[str] = []
        self.debounce_text_changes = 150
        self.commands = {name: command.copy() for name, command in KNOWN_SERVERS.items()}
        self.servers: dict[str, ServerSetup] = {}

    def configure(self, options: dict[str, Any]) -> None:
        self.debounce_text_changes = options.get("debounce_text_changes", 150)
        if not isinstance(self.debounce_text_changes, int) or self.debounce_text_changes < 0:
            log.error(
                "debounce_text_changes must be a non-negative integer,"
                f" not {self.debounce_text_changes!r}"
            )

        for name, command in options.get("commands", {}).items():
            if not (command and isinstance(command, list) and all(isinstance(p, str) for p in command)):
                log.error(f"command of {name!r} should be a list of strings, not {command!r}")
                continue
            self.commands[name] = command

        self.server_names = list(options.get("servers", []))
        for name in self.server_names:
            if name not in self.commands:
                # not an error, other servers can still work
                log.warning(f"unknown language server {name!r}, add it to the commands option")

    def make_shared_config(
        self, capabilities: dict[str, Any], on_attach: list[Binding]
    ) -> SharedServerConfig:
        return SharedServerConfig(self.debounce_text_changes, capabilities, on_attach)

    def setup_server(self, name: str, shared: SharedServerConfig) -> ServerSetup | None:
        """Set up one server if its program is installed. Never raises."""
        command = self.commands.get(name)
        if command is None:
            return None
        if shutil.which(command[0]) is None:
            log.info(f"not setting up {name!r} because {command[0]!r} was not found")
            return None

        setup = ServerSetup(name, command, shared)
        self.servers[name] = setup
        log.debug(f"set up language server {name!r}: {command}")
        return setup

    def get_actions(self) -> dict[str, ActionFunction]:
        return {
            action_name: (lambda context, method=method: self._request(context, method))
            for action_name, method in _REQUESTS.items()
        }

    def _request(self, context: ActionContext, method: str) -> None:
        if context.buffer.path is None:
            log.info(f"can't send {method}, the buffer has not been saved to a file")
            return

        lineno = context.buffer.line_number()
        column = context.buffer.cursor - context.buffer.line_start(lineno)
        params: dict[str, Any] = {
            "textDocument": {"uri": context.buffer.path.absolute().as_uri()},
            "position": {"line": lineno - 1, "character": column},
        }
        if method == "textDocument/rename":
            if not context.argument:
                log.info("rename needs the new name")
                return
            params["newName"] = context.argument
        elif method == "textDocument/references":
            params["context"] = {"includeDeclaration": True}
        elif method == "textDocument/codeAction":
            position = params.pop("position")
            params["range"] = {"start": position, "end": position}
            params["context"] = {
                "diagnostics": [
                    {"message": d.message, "severity": int(d.severity)}
                    for d in context.diagnostics
                    if d.line == lineno
                ]
            }

        context.send_lsp_request(method, params)


def load() -> Langserver:
    return Langserver()
