"""Find files and text with ripgrep.

Ripgrep must be installed. The picker that shows the results and filters
them as you type belongs to the host, this extension only lists candidates.
"""
from __future__ import annotations

import logging
import shutil
import subprocess
from typing import Any

from bramble.actions import ActionContext
from bramble.extensionloader import ActionFunction, Extension, ExtensionUnavailable

log = logging.getLogger(__name__)

PICKER_ACTIONS = {
    "move_selection_next",
    "move_selection_previous",
    "select_default",
    "close",
}


class FuzzyFinder(Extension):
    def __init__(self, rg_path: str) -> None:
        self.rg_path = rg_path
        self.prompt_position = "bottom"
        self.sorting_strategy = "descending"
        self.mappings: dict[str, dict[str, str]] = {}

    def configure(self, options: dict[str, Any]) -> None:
        layout = options.get("layout", {})
        self.prompt_position = layout.get("prompt_position", "bottom")
        if self.prompt_position not in {"top", "bottom"}:
            log.error(f"prompt_position must be 'top' or 'bottom', not {self.prompt_position!r}")

        self.sorting_strategy = options.get("sorting_strategy", "descending")
        if self.sorting_strategy not in {"ascending", "descending"}:
            log.error(
                f"sorting_strategy must be 'ascending' or 'descending', not {self.sorting_strategy!r}"
            )

        self.mappings = options.get("mappings", {})
        for mode, keys_to_actions in self.mappings.items():
            for keys, action_name in keys_to_actions.items():
                if action_name not in PICKER_ACTIONS:
                    log.error(f"unknown picker action {action_name!r} for {keys!r} in mode {mode!r}")

    def get_actions(self) -> dict[str, ActionFunction]:
        return {
            "find_files": self.find_files,
            "live_grep": self.live_grep,
            "buffers": self.buffers,
            "help_tags": self.help_tags,
        }

    def _show(self, context: ActionContext, candidates: list[str]) -> None:
        candidates = sorted(candidates)
        if self.sorting_strategy == "descending":
            candidates.reverse()
        for candidate in candidates:
            print(candidate, file=context.output)

    def _run_rg(self, context: ActionContext, args: list[str]) -> list[str]:
        result = subprocess.run(
            [self.rg_path] + args, cwd=context.cwd, stdout=subprocess.PIPE, text=True
        )
        # 1 means that nothing was found
        if result.returncode not in {0, 1}:
            log.warning(f"rg {' '.join(args)} exited with status {result.returncode}")
        return result.stdout.splitlines()

    def find_files(self, context: ActionContext) -> None:
        self._show(context, self._run_rg(context, ["--files"]))

    def live_grep(self, context: ActionContext) -> None:
        if not context.argument:
            log.info("live_grep needs something to search for")
            return
        self._show(context, self._run_rg(context, ["--line-number", "--", context.argument]))

    def buffers(self, context: ActionContext) -> None:
        self._show(context, [str(path) for path in context.open_buffers])

    def help_tags(self, context: ActionContext) -> None:
        self._show(context, [f"{name}\t{text}" for name, text in context.help_topics.items()])


def load() -> FuzzyFinder:
    rg_path = shutil.which("rg")
    if rg_path is None:
        raise ExtensionUnavailable("ripgrep (rg) is not installed")
    return FuzzyFinder(rg_path)
