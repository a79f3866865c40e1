"""Syntax trees with tree-sitter, for highlighting, indenting and selecting.

Needs the `tree_sitter_languages` package. The parsing itself is done by the
host's tree-sitter integration. This extension checks that parsers exist for
the languages you want and tells the host which features to turn on.
"""
from __future__ import annotations

import logging
from types import ModuleType
from typing import Any

from bramble.extensionloader import Extension, ExtensionUnavailable

log = logging.getLogger(__name__)

MODULES = ["highlight", "indent", "incremental_selection"]


class SyntaxTree(Extension):
    def __init__(self, languages_module: ModuleType) -> None:
        self._languages_module = languages_module
        self.installed_languages: list[str] = []
        self.missing_languages: list[str] = []
        self.enabled_modules: set[str] = set()

    def _has_parser(self, language: str) -> bool:
        try:
            self._languages_module.get_language(language)
        except Exception:
            log.debug(f"no tree-sitter parser for {language!r}", exc_info=True)
            return False
        return True

    def configure(self, options: dict[str, Any]) -> None:
        for name in MODULES:
            module_options = options.get(name, {})
            if not isinstance(module_options, dict):
                log.error(f"{name} should be a table like {{enable = true}}, not {module_options!r}")
                continue
            if module_options.get("enable", False):
                self.enabled_modules.add(name)

        for language in options.get("ensure_installed", []):
            if self._has_parser(language):
                self.installed_languages.append(language)
            else:
                self.missing_languages.append(language)

        if self.missing_languages:
            # not an error, highlighting still works for the other languages
            log.warning(
                "tree-sitter parsers not found for: " + ", ".join(self.missing_languages)
            )


def load() -> SyntaxTree:
    try:
        import tree_sitter_languages
    except ImportError as e:
        raise ExtensionUnavailable(f"tree-sitter is not installed: {e}") from e
    return SyntaxTree(tree_sitter_languages)
