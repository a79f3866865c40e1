"""Things that a key binding can do.

A binding never stores a function. It stores one of these references, and
the reference is resolved when the key is pressed:

- `BuiltinAction` refers to something that works without extensions, e.g.
  jumping to the next diagnostic.
- `ExtensionAction` refers to an action that an active extension returns
  from its `get_actions()` method.
"""
from __future__ import annotations

import dataclasses
import logging
import re
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Any, Callable, TextIO, Union

if TYPE_CHECKING:
    from bramble.diagnostics import Diagnostic, DiagnosticsConfig

log = logging.getLogger(__name__)


@dataclass(slots=True, frozen=True)
class BuiltinAction:
    name: str

    def __str__(self) -> str:
        return f"builtin:{self.name}"


@dataclass(slots=True, frozen=True)
class ExtensionAction:
    extension: str
    name: str

    def __str__(self) -> str:
        return f"{self.extension}:{self.name}"


ActionRef = Union[BuiltinAction, ExtensionAction]


def parse_action(action_string: str, owner: str | None) -> ActionRef:
    """Convert an action string from a preset to an action reference.

    `"builtin:foo"` means a built-in action. Anything else is an action of
    the extension that owns the binding.
    """
    if action_string.startswith("builtin:"):
        return BuiltinAction(action_string[len("builtin:") :])
    if owner is None:
        raise ValueError(
            f"{action_string!r} must be written as 'builtin:{action_string}', because the binding"
            " doesn't belong to an extension"
        )
    return ExtensionAction(owner, action_string)


@dataclass
class TextBuffer:
    """The text being edited when an action runs. `cursor` is a string index."""

    text: str = ""
    cursor: int = 0
    path: Path | None = None

    def insert(self, text: str) -> None:
        self.text = self.text[: self.cursor] + text + self.text[self.cursor :]
        self.cursor += len(text)

    def delete_before_cursor(self, how_many: int) -> None:
        assert 0 <= how_many <= self.cursor
        self.text = self.text[: self.cursor - how_many] + self.text[self.cursor :]
        self.cursor -= how_many

    def word_before_cursor(self) -> str:
        match = re.search(r"[\w./~-]*\Z", self.text[: self.cursor])
        assert match is not None
        return match.group(0)

    def line_number(self) -> int:
        """Return the line of the cursor. Lines are numbered starting at 1."""
        return self.text.count("\n", 0, self.cursor) + 1

    def line_start(self, lineno: int) -> int:
        index = 0
        for _ in range(lineno - 1):
            index = self.text.index("\n", index) + 1
        return index


@dataclass(slots=True, frozen=True)
class LspRequest:
    method: str
    params: dict[str, Any]


@dataclass
class ActionContext:
    """Everything an action can look at or change when it runs.

    The host that presses keys owns this object. Bramble doesn't talk to
    language servers itself, so requests are only collected into
    `lsp_requests` and the host sends them.
    """

    cwd: Path = dataclasses.field(default_factory=Path.cwd)
    output: TextIO = dataclasses.field(default_factory=lambda: sys.stdout)
    buffer: TextBuffer = dataclasses.field(default_factory=TextBuffer)
    open_buffers: list[Path] = dataclasses.field(default_factory=list)
    diagnostics: list[Diagnostic] = dataclasses.field(default_factory=list)
    diagnostics_config: DiagnosticsConfig | None = None
    argument: str | None = None
    help_topics: dict[str, str] = dataclasses.field(default_factory=dict)
    lsp_completion_items: list[str] = dataclasses.field(default_factory=list)
    lsp_requests: list[LspRequest] = dataclasses.field(default_factory=list)

    # set by Session.press(), does what the key does when nothing is bound to it
    fallback: Callable[[], None] = lambda: None

    def send_lsp_request(self, method: str, params: dict[str, Any]) -> None:
        log.debug(f"queueing {method} request for the host: {params}")
        self.lsp_requests.append(LspRequest(method, params))
