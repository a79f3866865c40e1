"""Completion menu with candidates from language servers, paths and the buffer.

Sources are grouped. The first group that gives any candidates is used,
so with `sources = [["lsp", "path"], ["buffer"]]` words from the buffer
are shown only when language servers and paths have nothing to offer.

Candidates are not ranked. They are shown in the order that the sources
produce them, duplicates removed.
"""
from __future__ import annotations

import copy
import logging
import os
import re
from pathlib import Path
from typing import Any, Callable, Iterator

from bramble.actions import ActionContext
from bramble.extensionloader import ActionFunction, Extension

from .snippets import Snippets

log = logging.getLogger(__name__)


def _lsp_source(context: ActionContext, prefix: str) -> Iterator[str]:
    for item in context.lsp_completion_items:
        if item.startswith(prefix):
            yield item


def _path_source(context: ActionContext, prefix: str) -> Iterator[str]:
    if "/" not in prefix:
        return

    directory_part, name_part = prefix.rsplit("/", 1)
    directory = Path(os.path.expanduser(directory_part or "/"))
    if not directory.is_absolute():
        directory = context.cwd / directory

    try:
        names = sorted(os.listdir(directory))
    except OSError:
        return
    for name in names:
        # hidden files only when the prefix asks for them
        if name.startswith(name_part) and (name_part.startswith(".") or not name.startswith(".")):
            yield f"{directory_part}/{name}"


def _buffer_source(context: ActionContext, prefix: str) -> Iterator[str]:
    if not prefix:
        return
    for match in re.finditer(r"\w+", context.buffer.text):
        word = match.group(0)
        # don't suggest the word being typed
        if word.startswith(prefix) and word != prefix and match.end() != context.buffer.cursor:
            yield word


SOURCES: dict[str, Callable[[ActionContext, str], Iterator[str]]] = {
    "lsp": _lsp_source,
    "path": _path_source,
    "buffer": _buffer_source,
}

# what completion adds to the client capabilities sent to language servers
_COMPLETION_CAPABILITIES = {
    "textDocument": {
        "completion": {
            "dynamicRegistration": False,
            "completionItem": {
                "snippetSupport": True,
                "commitCharactersSupport": True,
                "deprecatedSupport": True,
                "preselectSupport": True,
                "insertReplaceSupport": True,
                "labelDetailsSupport": True,
                "resolveSupport": {"properties": ["documentation", "detail", "additionalTextEdits"]},
            },
            "contextSupport": True,
        }
    }
}


def _deep_merge(base: dict[str, Any], extra: dict[str, Any]) -> dict[str, Any]:
    result = copy.deepcopy(base)
    for key, value in extra.items():
        if isinstance(value, dict) and isinstance(result.get(key), dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = copy.deepcopy(value)
    return result


class Completion(Extension):
    def __init__(self) -> None:
        self.source_groups: list[list[str]] = [["lsp", "path"], ["buffer"]]
        self.snippets: Snippets | None = None

        # the completion menu
        self.items: list[str] = []
        self.selected: int | None = None
        self._prefix = ""

    def configure(self, options: dict[str, Any]) -> None:
        groups = options.get("sources", self.source_groups)
        self.source_groups = []
        for group in groups:
            known = [name for name in group if name in SOURCES]
            for name in set(group) - set(known):
                log.error(f"unknown completion source {name!r}")
            self.source_groups.append(known)

    def use_snippets(self, snippets: Snippets | None) -> None:
        self.snippets = snippets

    def contribute_capabilities(self, capabilities: dict[str, Any]) -> dict[str, Any]:
        """Add what this extension supports to language server client capabilities."""
        return _deep_merge(capabilities, _COMPLETION_CAPABILITIES)

    def get_actions(self) -> dict[str, ActionFunction]:
        return {
            "complete": self.complete,
            "confirm": self.confirm,
            "abort": self.abort,
            "select_next_item": self.select_next_item,
            "select_prev_item": self.select_prev_item,
            "select_next_or_jump": self.select_next_or_jump,
            "select_prev_or_jump_back": self.select_prev_or_jump_back,
        }

    def visible(self) -> bool:
        return bool(self.items)

    def gather(self, context: ActionContext) -> list[str]:
        prefix = context.buffer.word_before_cursor()
        for group in self.source_groups:
            candidates: list[str] = []
            for source_name in group:
                for candidate in SOURCES[source_name](context, prefix):
                    if candidate not in candidates:
                        candidates.append(candidate)
            if candidates:
                return candidates
        return []

    def complete(self, context: ActionContext) -> None:
        self._prefix = context.buffer.word_before_cursor()
        self.items = self.gather(context)
        self.selected = 0 if self.items else None
        for index, item in enumerate(self.items):
            marker = ">" if index == self.selected else " "
            print(f"{marker} {item}", file=context.output)

    def abort(self, context: ActionContext) -> None:
        self.items = []
        self.selected = None

    def confirm(self, context: ActionContext) -> None:
        if self.selected is None:
            self.abort(context)
            context.fallback()
            return

        item = self.items[self.selected]
        self.abort(context)

        context.buffer.delete_before_cursor(len(self._prefix))
        if self.snippets is not None and "$" in item:
            self.snippets.expand(item, context.buffer)
        else:
            context.buffer.insert(item)

    def select_next_item(self, context: ActionContext) -> None:
        if self.items:
            self.selected = 0 if self.selected is None else (self.selected + 1) % len(self.items)

    def select_prev_item(self, context: ActionContext) -> None:
        if self.items:
            self.selected = (
                len(self.items) - 1
                if self.selected is None
                else (self.selected - 1) % len(self.items)
            )

    def select_next_or_jump(self, context: ActionContext) -> None:
        if self.visible():
            self.select_next_item(context)
        elif self.snippets is not None and self.snippets.expand_or_jumpable(context.buffer):
            self.snippets.expand_or_jump(context.buffer)
        else:
            context.fallback()

    def select_prev_or_jump_back(self, context: ActionContext) -> None:
        if self.visible():
            self.select_prev_item(context)
        elif self.snippets is not None and self.snippets.jumpable(-1):
            self.snippets.jump(context.buffer, -1)
        else:
            context.fallback()


def load() -> Completion:
    return Completion()
