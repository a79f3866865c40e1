"""How diagnostics are shown, and built-in actions for moving between them.

Bramble never produces diagnostics. Language servers report them to the host,
and the host puts them into `ActionContext.diagnostics`.
"""
from __future__ import annotations

import dataclasses
import enum
import logging
from typing import Any, Callable

import dacite

from bramble.actions import ActionContext

log = logging.getLogger(__name__)


class Severity(enum.IntEnum):
    # same numbers as in the language server protocol, most severe first
    ERROR = 1
    WARN = 2
    INFO = 3
    HINT = 4


SIGNS = {Severity.ERROR: "E", Severity.WARN: "W", Severity.INFO: "I", Severity.HINT: "H"}


@dataclasses.dataclass
class Diagnostic:
    line: int  # 1-based
    column: int  # 0-based
    severity: Severity
    message: str
    source: str | None = None


@dataclasses.dataclass
class VirtualText:
    spacing: int = 4
    prefix: str = "■"


@dataclasses.dataclass
class DiagnosticsConfig:
    virtual_text: VirtualText | None = dataclasses.field(default_factory=VirtualText)
    signs: bool = True
    update_in_insert: bool = False
    severity_sort: bool = False


def _parse_severity(value: object) -> Severity:
    if isinstance(value, str):
        return Severity[value.upper()]
    return Severity(value)


_DACITE_CONFIG = dacite.Config(strict=True, type_hooks={Severity: _parse_severity})


def config_from_dict(data: dict[str, Any]) -> DiagnosticsConfig:
    """Convert the `[diagnostics]` table of a preset. `virtual_text = false` turns it off."""
    data = dict(data)
    if data.get("virtual_text") is False:
        data["virtual_text"] = None
    return dacite.from_dict(DiagnosticsConfig, data, config=dacite.Config(strict=True))


def diagnostics_from_json(data: list[dict[str, Any]]) -> list[Diagnostic]:
    """Convert diagnostics given by the host, e.g. `{"severity": "WARN", ...}`."""
    return [dacite.from_dict(Diagnostic, item, config=_DACITE_CONFIG) for item in data]


def sorted_diagnostics(
    diagnostics: list[Diagnostic], config: DiagnosticsConfig
) -> list[Diagnostic]:
    by_position = sorted(diagnostics, key=(lambda d: (d.line, d.column)))
    if config.severity_sort:
        # stable sort, so diagnostics of the same severity stay in position order
        return sorted(by_position, key=(lambda d: d.severity))
    return by_position


def format_diagnostic(diagnostic: Diagnostic, config: DiagnosticsConfig) -> str:
    parts = []
    if config.signs:
        parts.append(SIGNS[diagnostic.severity])
    parts.append(f"{diagnostic.line}:{diagnostic.column + 1}")

    message = diagnostic.message
    if diagnostic.source is not None:
        message = f"{diagnostic.source}: {message}"
    if config.virtual_text is not None:
        message = config.virtual_text.prefix + " " * config.virtual_text.spacing + message

    return " ".join(parts) + " " + message


def _get_config(context: ActionContext) -> DiagnosticsConfig:
    return context.diagnostics_config or DiagnosticsConfig()


def open_float(context: ActionContext) -> None:
    config = _get_config(context)
    lineno = context.buffer.line_number()
    on_this_line = [d for d in context.diagnostics if d.line == lineno]
    if not on_this_line:
        log.debug(f"no diagnostics on line {lineno}")
        return
    for diagnostic in sorted_diagnostics(on_this_line, config):
        print(format_diagnostic(diagnostic, config), file=context.output)


def set_loclist(context: ActionContext) -> None:
    config = _get_config(context)
    for diagnostic in sorted_diagnostics(context.diagnostics, config):
        location = "" if context.buffer.path is None else f"{context.buffer.path}:"
        print(location + format_diagnostic(diagnostic, config), file=context.output)


def _move_cursor_to(context: ActionContext, diagnostic: Diagnostic) -> None:
    line_start = context.buffer.line_start(diagnostic.line)
    line_end = context.buffer.text.find("\n", line_start)
    if line_end == -1:
        line_end = len(context.buffer.text)
    context.buffer.cursor = min(line_start + diagnostic.column, line_end)


def _position(context: ActionContext) -> tuple[int, int]:
    lineno = context.buffer.line_number()
    return (lineno, context.buffer.cursor - context.buffer.line_start(lineno))


def goto_next(context: ActionContext) -> None:
    here = _position(context)
    after = [d for d in context.diagnostics if (d.line, d.column) > here]
    if after:
        _move_cursor_to(context, min(after, key=(lambda d: (d.line, d.column))))
    elif context.diagnostics:
        # wrap around like the editor does
        _move_cursor_to(context, min(context.diagnostics, key=(lambda d: (d.line, d.column))))


def goto_prev(context: ActionContext) -> None:
    here = _position(context)
    before = [d for d in context.diagnostics if (d.line, d.column) < here]
    if before:
        _move_cursor_to(context, max(before, key=(lambda d: (d.line, d.column))))
    elif context.diagnostics:
        _move_cursor_to(context, max(context.diagnostics, key=(lambda d: (d.line, d.column))))


builtin_actions: dict[str, Callable[[ActionContext], None]] = {
    "diagnostic_open_float": open_float,
    "diagnostic_setloclist": set_loclist,
    "diagnostic_goto_prev": goto_prev,
    "diagnostic_goto_next": goto_next,
}
