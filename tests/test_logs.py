import logging
import os
from datetime import datetime

import pytest

from bramble import _logs, dirs


def test_remove_old_logs(monkeypatch, caplog, mocker):
    long_time_ago = datetime(year=1987, month=6, day=5, hour=4, minute=3, second=2)
    dirs.user_log_path.mkdir(parents=True, exist_ok=True)

    with monkeypatch.context() as monkey:
        mock = mocker.Mock()
        mock.now.return_value = long_time_ago
        monkey.setattr("bramble._logs.datetime", mock)

        _logs._open_log_file().close()
        _logs._open_log_file().close()
        _logs._open_log_file().close()

    (dirs.user_log_path / "whatever.txt").write_text("")

    caplog.set_level(logging.INFO)
    _logs._remove_old_logs()

    text = caplog.text
    assert f"logs{os.sep}1987-06-05T04-03-02.txt is more than 7 days old, removing" in text
    assert f"logs{os.sep}1987-06-05T04-03-02_1.txt is more than 7 days old, removing" in text
    assert f"logs{os.sep}1987-06-05T04-03-02_2.txt is more than 7 days old, removing" in text
    assert "contains a file with an unexpected name: whatever.txt" in text
    assert not list(dirs.user_log_path.glob("1987-*"))


def test_log_path_printed(mocker):
    mock = mocker.patch("bramble._logs.print")
    mock.side_effect = ZeroDivisionError  # to make it stop when it prints
    with pytest.raises(ZeroDivisionError):
        _logs.setup()

    mock.assert_called_once()
    [printed] = mock.call_args[0]
    assert printed.startswith("log file: ")
    assert os.path.isfile(printed[len("log file: ") :])


def test_verbose_logger_filter():
    log_filter = _logs._FilterThatDoesntHideWarnings(["bramble.extensions"])

    def record(name, level):
        return logging.LogRecord(name, level, __file__, 1, "hello", None, None)

    assert log_filter.filter(record("bramble.extensions.langserver", logging.DEBUG))
    assert not log_filter.filter(record("bramble.startup", logging.DEBUG))
    assert not log_filter.filter(record("bramble.startup", logging.INFO))
    assert log_filter.filter(record("bramble.startup", logging.WARNING))
