"""The trigger table: which action runs when a key is pressed in a mode.

Modes are one-letter names like in the editor: "n" (normal), "i" (insert),
"v" (visual), "s" (select). Keys are written like "<C-j>", "gd" or
"<leader>ff". The leader is substituted when a binding is added, so changing
the `mapleader` setting afterwards does not affect existing bindings.
"""
from __future__ import annotations

import dataclasses
import logging
from collections.abc import Iterable, Iterator

from bramble.actions import ActionRef

log = logging.getLogger(__name__)

VALID_MODES = {"n", "i", "v", "x", "s", "o", "c", "t"}


@dataclasses.dataclass(frozen=True)
class Trigger:
    keys: str
    mode: str


@dataclasses.dataclass(frozen=True)
class Binding:
    trigger: Trigger
    action: ActionRef
    description: str = ""
    owner: str | None = None  # name of extension, None for global bindings
    buffer_local: bool = False


def expand_leader(keys: str, leader: str) -> str:
    # <leader> is case insensitive in the editor
    result = keys
    for spelling in ("<leader>", "<Leader>", "<LEADER>"):
        result = result.replace(spelling, leader)
    return result


class Keymap:
    def __init__(self, leader: str = "\\") -> None:
        self.leader = leader
        self._bindings: dict[Trigger, Binding] = {}

    def set(
        self,
        modes: str | Iterable[str],
        keys: str,
        action: ActionRef,
        *,
        description: str = "",
        owner: str | None = None,
        buffer_local: bool = False,
    ) -> list[Binding]:
        """Bind keys in one or more modes. An existing binding for the same keys and mode is replaced."""
        if isinstance(modes, str):
            modes = [modes]
        modes = list(modes)
        if not modes:
            raise ValueError(f"no modes given for {keys!r}")
        for mode in modes:
            if mode not in VALID_MODES:
                raise ValueError(f"unknown mode {mode!r} for {keys!r}")

        expanded = expand_leader(keys, self.leader)
        result = []
        for mode in modes:
            trigger = Trigger(expanded, mode)
            binding = Binding(trigger, action, description, owner, buffer_local)
            old = self._bindings.get(trigger)
            if old is not None and old != binding:
                log.debug(f"{mode} {expanded!r}: {old.action} is replaced with {action}")
            self._bindings[trigger] = binding
            result.append(binding)
        return result

    def get(self, mode: str, keys: str) -> Binding | None:
        return self._bindings.get(Trigger(expand_leader(keys, self.leader), mode))

    def owned_by(self, owner: str) -> list[Binding]:
        return [b for b in self._bindings.values() if b.owner == owner]

    def __iter__(self) -> Iterator[Binding]:
        return iter(self._bindings.values())

    def __len__(self) -> int:
        return len(self._bindings)
