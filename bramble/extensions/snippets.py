"""Snippet expansion and jumping between snippet fields.

Snippet bodies use the syntax that language servers send, e.g.
``for ${1:item} in ${2:items}:\\n    $0``. Own snippets can be added in the
preset:

    [[extensions]]
    name = "snippets"
    options.snippets = { ifmain = "if __name__ == \\"__main__\\":\\n    ${1:main()}" }

Typing ``ifmain`` and pressing Tab then expands it, if the completion
extension is also active.
"""
from __future__ import annotations

import dataclasses
import logging
import re
from typing import Any

from bramble.actions import TextBuffer
from bramble.extensionloader import ActionFunction, Extension

log = logging.getLogger(__name__)

# $1, ${1}, ${1:placeholder}, ${1|one,two|}, and \$ for a literal dollar sign
_TABSTOP_REGEX = re.compile(
    r"""
    \\(?P<escaped>[$}\\])
    | \$(?P<simple>\d+)
    | \$\{(?P<number>\d+)(?::(?P<placeholder>[^}]*)|\|(?P<choices>[^|]*)\|)?\}
    """,
    flags=re.VERBOSE,
)


@dataclasses.dataclass
class Field:
    number: int
    start: int
    end: int


def parse_snippet(body: str) -> tuple[str, list[Field]]:
    """Return the text of a snippet and its fields in jumping order.

    Offsets are relative to the start of the snippet. Field 0 is the final
    cursor position, and it's added to the end if the body doesn't have it.
    """
    text_parts: list[str] = []
    fields: dict[int, Field] = {}
    length = 0
    previous_end = 0

    for match in _TABSTOP_REGEX.finditer(body):
        before = body[previous_end : match.start()]
        text_parts.append(before)
        length += len(before)
        previous_end = match.end()

        if match.group("escaped") is not None:
            text_parts.append(match.group("escaped"))
            length += 1
            continue

        if match.group("simple") is not None:
            number = int(match.group("simple"))
            placeholder = ""
        else:
            number = int(match.group("number"))
            if match.group("choices") is not None:
                placeholder = match.group("choices").split(",")[0]
            else:
                placeholder = match.group("placeholder") or ""

        text_parts.append(placeholder)
        # if a number appears twice, jump to the first one
        fields.setdefault(number, Field(number, length, length + len(placeholder)))
        length += len(placeholder)

    text_parts.append(body[previous_end:])
    length += len(body[previous_end:])

    if 0 not in fields:
        fields[0] = Field(0, length, length)
    ordered = sorted((f for f in fields.values() if f.number != 0), key=(lambda f: f.number))
    return ("".join(text_parts), ordered + [fields[0]])


@dataclasses.dataclass
class _ActiveSnippet:
    fields: list[Field]
    current: int
    text_length_when_jumped: int


class Snippets(Extension):
    def __init__(self) -> None:
        self.snippets: dict[str, str] = {}
        self._active: _ActiveSnippet | None = None

    def configure(self, options: dict[str, Any]) -> None:
        snippets = options.get("snippets", {})
        for trigger, body in snippets.items():
            if not isinstance(body, str):
                log.error(f"snippet {trigger!r} should be a string, not {body!r}")
                continue
            self.snippets[trigger] = body

    def get_actions(self) -> dict[str, ActionFunction]:
        return {
            "expand_or_jump": (lambda context: self.expand_or_jump(context.buffer)),
            "jump_back": (lambda context: self.jump(context.buffer, -1)),
        }

    def expand(self, body: str, buffer: TextBuffer) -> None:
        """Insert a snippet body at the cursor and select its first field."""
        text, fields = parse_snippet(body)
        offset = buffer.cursor
        buffer.insert(text)
        for field in fields:
            field.start += offset
            field.end += offset

        self._active = _ActiveSnippet(fields, -1, len(buffer.text))
        self.jump(buffer, 1)

    def _trigger_before_cursor(self, buffer: TextBuffer) -> str | None:
        word = buffer.word_before_cursor()
        if word in self.snippets:
            return word
        return None

    def jumpable(self, direction: int) -> bool:
        if self._active is None:
            return False
        new_index = self._active.current + direction
        return 0 <= new_index < len(self._active.fields)

    def jump(self, buffer: TextBuffer, direction: int) -> bool:
        if not self.jumpable(direction):
            return False
        assert self._active is not None

        # Assume that text was typed into the current field and shift the fields after it
        delta = len(buffer.text) - self._active.text_length_when_jumped
        if self._active.current >= 0 and delta:
            self._active.fields[self._active.current].end += delta
            for field in self._active.fields[self._active.current + 1 :]:
                field.start += delta
                field.end += delta

        self._active.current += direction
        self._active.text_length_when_jumped = len(buffer.text)
        field = self._active.fields[self._active.current]
        buffer.cursor = field.end
        log.debug(f"jumped to field {field.number}")

        if field.number == 0:
            # final position reached, snippet is done
            self._active = None
        return True

    def current_field(self) -> Field | None:
        if self._active is None or self._active.current < 0:
            return None
        return self._active.fields[self._active.current]

    def expand_or_jumpable(self, buffer: TextBuffer) -> bool:
        return self._trigger_before_cursor(buffer) is not None or self.jumpable(1)

    def expand_or_jump(self, buffer: TextBuffer) -> bool:
        trigger = self._trigger_before_cursor(buffer)
        if trigger is not None:
            buffer.delete_before_cursor(len(trigger))
            self.expand(self.snippets[trigger], buffer)
            return True
        return self.jump(buffer, 1)


def load() -> Snippets:
    return Snippets()

