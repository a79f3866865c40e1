"""Pick a Pygments color style for the editor."""
from __future__ import annotations

import logging
from typing import Any

from pygments import styles, token
from pygments.util import ClassNotFound

from bramble.actions import ActionContext
from bramble.extensionloader import ActionFunction, Extension

log = logging.getLogger(__name__)


def get_colors(style_name: str) -> tuple[str, str]:
    """Return foreground and background colors of a style as `#rrggbb` strings."""
    style = styles.get_style_by_name(style_name)
    bg = style.background_color

    # iter() to make sure that dict() really treats the style as an iterable of pairs
    style_infos = dict(iter(style))
    fg = style_infos[token.Text]["color"] or style_infos[token.Name]["color"]
    if fg:
        # style_infos doesn't contain leading '#' for whatever reason
        return ("#" + fg, bg)
    return ("#ffffff" if _is_dark(bg) else "#000000", bg)


def _is_dark(color: str) -> bool:
    color = color.lstrip("#")
    if len(color) != 6:
        return False
    r, g, b = (int(color[i : i + 2], 16) for i in (0, 2, 4))
    return (r + g + b) / 3 < 0x80


class Colorscheme(Extension):
    def __init__(self) -> None:
        self.style_name = "default"
        self.foreground = ""
        self.background = ""

    def configure(self, options: dict[str, Any]) -> None:
        name = options.get("style", "default")
        try:
            self.foreground, self.background = get_colors(name)
        except ClassNotFound:
            # It is possible to install third-party pygments style packages.
            log.error(f"there is no Pygments style named {name!r}")
            return
        self.style_name = name
        log.info(f"using Pygments style {name!r}: fg={self.foreground} bg={self.background}")

    def get_actions(self) -> dict[str, ActionFunction]:
        return {"list_styles": self.list_styles}

    def list_styles(self, context: ActionContext) -> None:
        for name in sorted(styles.get_all_styles()):
            marker = "*" if name == self.style_name else " "
            print(f"{marker} {name}", file=context.output)


def load() -> Colorscheme:
    return Colorscheme()
