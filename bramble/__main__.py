from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path

from bramble import __version__ as bramble_version
from bramble import _logs, config, dirs, settings, startup
from bramble.actions import ActionContext, TextBuffer
from bramble.bootstrap import BootstrapError
from bramble.diagnostics import diagnostics_from_json
from bramble.keymap import VALID_MODES

log = logging.getLogger(__name__)


_EPILOG = r"""
Examples:
  %(prog)s                                # show which extensions work
  %(prog)s --preset truecolor             # use another preset
  %(prog)s --without-extensions=langserver,completion
  %(prog)s --list-bindings                # what keys do what
  %(prog)s --press n "<leader>ff"         # run the action bound to <leader>ff
  %(prog)s -v                             # produce lots of output for debugging
"""


def _print_extensions(session: startup.Session) -> None:
    for name, info in session.infos.items():
        if session.registry.came_with_bramble(name):
            where = "built-in"
        elif session.registry.lookup(name) is not None:
            where = "external"
        else:
            where = "-"
        bindings = len(session.keymap.owned_by(name))
        print(f"{name:<15} {info.status.name:<25} {where:<10} {bindings} bindings")
        if info.error is not None:
            # last line of a traceback is the error message
            print(f"    {info.error.strip().splitlines()[-1]}")


def _print_bindings(session: startup.Session) -> None:
    for binding in sorted(session.keymap, key=(lambda b: (b.trigger.mode, b.trigger.keys))):
        owner = binding.owner or "global"
        flags = " (buffer-local)" if binding.buffer_local else ""
        print(
            f"{binding.trigger.mode} {binding.trigger.keys!r:<12} {str(binding.action):<40}"
            f" {owner}{flags}  {binding.description}".rstrip()
        )


def _press(session: startup.Session, args: argparse.Namespace) -> bool:
    mode, keys = args.press
    buffer = TextBuffer()
    if args.buffer is not None:
        buffer = TextBuffer(args.buffer.read_text(encoding="utf-8"), 0, args.buffer)
    if args.cursor is not None:
        buffer.cursor = min(args.cursor, len(buffer.text))

    context = ActionContext(buffer=buffer, argument=args.argument)
    if args.diagnostics is not None:
        context.diagnostics = diagnostics_from_json(
            json.loads(args.diagnostics.read_text(encoding="utf-8"))
        )

    text_before = buffer.text
    if not session.press(mode, keys, context):
        print(f"nothing is bound to {keys!r} in mode {mode!r}", file=sys.stderr)
        return False

    for request in context.lsp_requests:
        print(json.dumps({"method": request.method, "params": request.params}))
    if buffer.text != text_before:
        sys.stdout.write(buffer.text)
    return True


def _save_settings(
    session: startup.Session, assignments: list[str], parser: argparse.ArgumentParser
) -> None:
    for assignment in assignments:
        name, equal_sign, json_value = assignment.partition("=")
        try:
            if not equal_sign:
                raise ValueError("should be NAME=VALUE")
            session.settings.set_json_safe_value(name, json.loads(json_value))
        except (ValueError, TypeError) as e:
            parser.error(f"--save-setting {assignment!r}: {e}")
    settings.save(session.settings)
    log.info(f"saved {settings.get_json_path()}")


def main() -> None:
    parser = argparse.ArgumentParser(
        prog="bramble",
        epilog=_EPILOG,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"Bramble {bramble_version}",
        help="display the Bramble version number and exit",
    )

    verbose_group = parser.add_mutually_exclusive_group()
    verbose_group.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help=(
            "print all logging messages to stderr, only warnings and errors "
            "are printed by default (but all messages always go to a log "
            "file as well)"
        ),
    )
    verbose_group.add_argument(
        "--verbose-logger",
        action="append",  # Allow passing multiple times: --verbose-logger foo --verbose-logger bar
        help=(
            "increase verbosity for just one logger only, e.g. "
            "--verbose-logger=bramble.extensions.langserver "
            "to see which language servers were set up"
        ),
    )

    config_group = parser.add_argument_group("configuration options")
    config_group.add_argument(
        "--preset",
        default="default",
        choices=config.get_preset_names(),
        help="preset to start from (default: %(default)s)",
    )
    config_group.add_argument(
        "--config",
        type=Path,
        metavar="FILE",
        help="merge FILE on top of the preset instead of the config.toml in the config directory",
    )
    config_group.add_argument(
        "--save-setting",
        action="append",
        default=[],
        metavar="NAME=VALUE",
        help=(
            "change a setting persistently in settings.json, VALUE is JSON,"
            " e.g. --save-setting relativenumber=true or --save-setting 'mapleader=\",\"'"
        ),
    )
    config_group.add_argument(
        "--skip-bootstrap",
        action="store_true",
        help="don't download anything, use the manager only if it is already installed",
    )

    extension_group = parser.add_argument_group("extension loading options")
    extension_group.add_argument(
        "--no-extensions",
        action="store_false",
        dest="use_extensions",
        help=(
            "don't activate any extensions, this is useful for "
            "seeing what is left without them"
        ),
    )
    extension_group.add_argument(
        "--without-extensions",
        metavar="EXTENSIONS",
        default="",
        help=(
            "don't activate EXTENSIONS, e.g. --without-extensions=langserver disables language"
            " servers, multiple extension names can be given comma-separated"
        ),
    )

    what_group = parser.add_argument_group("what to do after startup")
    what_group.add_argument(
        "--list-extensions",
        action="store_true",
        help="show the status of each extension, this is the default",
    )
    what_group.add_argument("--list-bindings", action="store_true", help="show all key bindings")
    what_group.add_argument(
        "--list-settings", action="store_true", help="show all settings and their values"
    )
    what_group.add_argument(
        "--press",
        nargs=2,
        metavar=("MODE", "KEYS"),
        help="run the action bound to KEYS in MODE, e.g. --press i '<Tab>'",
    )
    press_group = parser.add_argument_group("options for --press")
    press_group.add_argument("--buffer", type=Path, metavar="FILE", help="text being edited")
    press_group.add_argument(
        "--cursor", type=int, metavar="INDEX", help="cursor position in the text (default: 0)"
    )
    press_group.add_argument(
        "--diagnostics",
        type=Path,
        metavar="FILE",
        help='JSON file with diagnostics, e.g. [{"line": 1, "column": 0, "severity": "WARN", "message": "x"}]',
    )
    press_group.add_argument(
        "--argument", help="text that the action asks for, e.g. the new name for a rename"
    )

    args = parser.parse_args()
    if args.press is not None and args.press[0] not in VALID_MODES:
        parser.error(f"--press: unknown mode {args.press[0]!r}")

    dirs.user_log_path.mkdir(parents=True, exist_ok=True)
    (dirs.user_config_path / "extensions").mkdir(parents=True, exist_ok=True)
    _logs.setup(all_loggers_verbose=args.verbose, verbose_loggers=(args.verbose_logger or []))

    try:
        startup_config = config.load_config(args.preset, args.config)
    except config.ConfigError as e:
        log.debug("loading config failed", exc_info=True)
        print(f"bramble: {e}", file=sys.stderr)
        sys.exit(1)

    declared = [descriptor.name for descriptor in startup_config.extensions]
    if not args.use_extensions:
        disable_list = declared
    elif args.without_extensions:
        disable_list = args.without_extensions.split(",")
    else:
        disable_list = []

    bad_disables = set(disable_list) - set(declared)
    if bad_disables:
        one_of_them, *the_rest = bad_disables
        parser.error(f"--without-extensions: no extension named {one_of_them!r}")

    try:
        session = startup.run(
            startup_config,
            skip_bootstrap=args.skip_bootstrap,
            disabled_on_command_line=disable_list,
        )
    except BootstrapError as e:
        log.debug("bootstrapping failed", exc_info=True)
        print(f"bramble: {e}", file=sys.stderr)
        sys.exit(1)

    if args.save_setting:
        _save_settings(session, args.save_setting, parser)

    if args.list_extensions or not (args.list_bindings or args.list_settings or args.press):
        _print_extensions(session)
    if args.list_bindings:
        _print_bindings(session)
    if args.list_settings:
        session.settings.debug_dump()
    if args.press is not None and not _press(session, args):
        sys.exit(1)

    log.info("exiting Bramble successfully")


# python3 -m bramble
if __name__ == "__main__":
    main()
