from __future__ import annotations

import itertools
import logging
import os
import sys
from datetime import datetime, timedelta
from typing import Any, TextIO, cast

import bramble
from bramble import dirs

log = logging.getLogger(__name__)
FILENAME_FIRST_PART_FORMAT = "%Y-%m-%dT%H-%M-%S"

# might be useful to grep something from old logs, but 30 days was way too much
LOG_MAX_AGE_DAYS = 7


def _remove_old_logs() -> None:
    for path in dirs.user_log_path.glob("*.txt"):
        # support '<log dir>/<first_part>_<number>.txt' and '<log dir>/<firstpart>.txt'
        first_part = path.stem.split("_")[0]
        try:
            log_date = datetime.strptime(first_part, FILENAME_FIRST_PART_FORMAT)
        except ValueError:
            log.info(f"{path.parent} contains a file with an unexpected name: {path.name}")
            continue

        how_old = datetime.now() - log_date
        if how_old > timedelta(days=LOG_MAX_AGE_DAYS):
            log.info(f"{path} is more than {LOG_MAX_AGE_DAYS} days old, removing")
            path.unlink()


def _open_log_file() -> TextIO:
    timestamp = datetime.now().strftime(FILENAME_FIRST_PART_FORMAT)
    filenames = (
        f"{timestamp}.txt" if i == 0 else f"{timestamp}_{i}.txt" for i in itertools.count()
    )
    for filename in filenames:
        try:
            return (dirs.user_log_path / filename).open("x", encoding="utf-8")
        except FileExistsError:
            continue
    assert False  # makes mypy happy


class _FilterThatDoesntHideWarnings(logging.Filter):
    def __init__(self, logger_names: list[str]) -> None:
        super().__init__()
        self._filters = [logging.Filter(name) for name in logger_names]

    def filter(self, record: logging.LogRecord) -> bool:
        return record.levelno >= logging.WARNING or any(f.filter(record) for f in self._filters)


def setup(all_loggers_verbose: bool = False, verbose_loggers: list[str] | None = None) -> None:
    handlers: list[logging.Handler] = []

    dirs.user_log_path.mkdir(parents=True, exist_ok=True)
    log_file = _open_log_file()
    print(f"log file: {log_file.name}", file=sys.stderr)

    file_handler = logging.StreamHandler(log_file)
    file_handler.setLevel(logging.DEBUG)
    file_handler.setFormatter(
        logging.Formatter("[%(asctime)s] %(name)s %(levelname)s: %(message)s")
    )
    handlers.append(file_handler)

    if sys.stderr is not None:
        print_handler = logging.StreamHandler(sys.stderr)
        if all_loggers_verbose:
            print_handler.setLevel(logging.DEBUG)
        elif verbose_loggers:
            print_handler.setLevel(logging.DEBUG)
            print_handler.addFilter(_FilterThatDoesntHideWarnings(verbose_loggers))
        else:
            print_handler.setLevel(logging.WARNING)
        print_handler.setFormatter(logging.Formatter("%(name)s %(levelname)s: %(message)s"))
        handlers.append(print_handler)

    # don't know why level must be specified here
    logging.basicConfig(level=logging.DEBUG, handlers=handlers)

    bramble_path = cast(Any, bramble).__path__[0]
    log.debug(f"starting Bramble {bramble.__version__} from '{bramble_path}'")
    log.debug(f"PID: {os.getpid()}")
    log.debug("running on Python %d.%d.%d from '%s'", *sys.version_info[:3], sys.executable)
    log.debug(f"sys.platform is {sys.platform!r}")

    # don't fail to run if old logs can't be deleted for some reason
    try:
        _remove_old_logs()
    except OSError:
        log.exception("unexpected problem with removing old log files")
