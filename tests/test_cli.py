import json
import shutil
import sys

import pytest

import bramble
from bramble import dirs, settings
from bramble.__main__ import main
from bramble.bootstrap import BootstrapError


def test_version(run_bramble):
    assert run_bramble(["--version"], 0) == f"Bramble {bramble.__version__}\n"


@pytest.fixture
def run_main(monkeypatch, mocker, tmp_path, capsys):
    mocker.patch("bramble._logs.setup")
    empty_config = tmp_path / "empty.toml"
    empty_config.write_text("")

    def actually_run_main(args, expected_exit_status=0):
        argv = ["bramble", "--config", str(empty_config)] + args
        monkeypatch.setattr(sys, "argv", argv)
        if expected_exit_status == 0:
            main()
        else:
            with pytest.raises(SystemExit) as exc_info:
                main()
            assert exc_info.value.code == expected_exit_status
        return capsys.readouterr()

    return actually_run_main


@pytest.fixture
def manager_installed():
    manager = dirs.user_data_path / "manager"
    manager.mkdir(parents=True, exist_ok=True)


def test_bad_without_extensions_argument(run_main):
    output = run_main(["--skip-bootstrap", "--without-extensions=asdf"], 2)
    assert "usage:" in output.err
    assert "--without-extensions: no extension named 'asdf'" in output.err


def test_bad_press_mode(run_main):
    output = run_main(["--skip-bootstrap", "--press", "q", "x"], 2)
    assert "--press: unknown mode 'q'" in output.err


def test_no_extensions(run_main):
    output = run_main(["--skip-bootstrap", "--no-extensions", "--list-extensions"])
    lines = output.out.splitlines()
    assert len(lines) == 5
    for line in lines:
        assert "DISABLED_ON_COMMAND_LINE" in line


def test_list_extensions_is_the_default(run_main):
    output = run_main(["--skip-bootstrap", "--without-extensions=syntax_tree,fuzzy_finder"])
    statuses = {line.split()[0]: line.split()[1] for line in output.out.splitlines() if line[0] != " "}
    assert statuses == {
        "fuzzy_finder": "DISABLED_ON_COMMAND_LINE",
        "syntax_tree": "DISABLED_ON_COMMAND_LINE",
        "snippets": "ACTIVE",
        "langserver": "ACTIVE",
        "completion": "ACTIVE",
    }
    lines = {line.split()[0]: line for line in output.out.splitlines()}
    assert lines["langserver"].endswith(" 9 bindings")
    assert lines["completion"].endswith(" 6 bindings")
    assert lines["syntax_tree"].endswith(" 0 bindings")


def test_list_bindings(run_main):
    output = run_main(["--skip-bootstrap", "--list-bindings"])
    assert "n ' e'" in output.out
    assert "builtin:diagnostic_open_float" in output.out
    assert "langserver:definition" in output.out
    assert "(buffer-local)" in output.out
    assert "completion:select_next_or_jump" in output.out


def test_list_settings(run_main):
    output = run_main(["--skip-bootstrap", "--list-settings"])
    assert "  mapleader = ' '" in output.out
    assert "  disabled_extensions = []" in output.out


def test_press_shows_diagnostics(run_main, tmp_path):
    buffer = tmp_path / "hello.py"
    buffer.write_text("print(x)\n")
    diagnostics = tmp_path / "diagnostics.json"
    diagnostics.write_text(
        json.dumps([{"line": 1, "column": 6, "severity": "ERROR", "message": "x is undefined"}])
    )

    output = run_main(
        [
            "--skip-bootstrap",
            "--press",
            "n",
            "<leader>e",
            "--buffer",
            str(buffer),
            "--diagnostics",
            str(diagnostics),
        ]
    )
    assert output.out == "E 1:7 ●  x is undefined\n"


def test_press_sends_lsp_request(run_main, tmp_path):
    buffer = tmp_path / "hello.py"
    buffer.write_text("import os\nos.getcwd()\n")
    output = run_main(
        ["--skip-bootstrap", "--press", "n", "gd", "--buffer", str(buffer), "--cursor", "13"]
    )
    request = json.loads(output.out)
    assert request["method"] == "textDocument/definition"
    assert request["params"]["position"] == {"line": 1, "character": 3}


def test_press_inserts_text(run_main, tmp_path):
    buffer = tmp_path / "hello.py"
    buffer.write_text("ab")
    output = run_main(
        ["--skip-bootstrap", "--press", "i", "<Tab>", "--buffer", str(buffer), "--cursor", "1"]
    )
    assert output.out == "a\tb"


def test_press_unbound_key(run_main):
    output = run_main(["--skip-bootstrap", "--press", "n", "<F12>"], 1)
    assert "nothing is bound to '<F12>' in mode 'n'" in output.err


def test_bad_config_file(run_main, tmp_path):
    bad = tmp_path / "bad.toml"
    bad.write_text("[options\n")
    output = run_main(["--skip-bootstrap", "--config", str(bad)], 1)
    assert output.err.startswith("bramble: reading ")


def test_bootstrap_failure(run_main, mocker):
    shutil.rmtree(dirs.user_data_path / "manager", ignore_errors=True)
    mocker.patch("bramble.bootstrap.fetch", side_effect=BootstrapError("no network"))
    output = run_main([], 1)
    assert output.err == "bramble: no network\n"
    assert output.out == ""


def test_bootstrapped_manager_is_used(run_main, manager_installed, mocker):
    fetch = mocker.patch("bramble.bootstrap.fetch")
    run_main(["--list-extensions"])
    fetch.assert_not_called()


def test_save_setting(run_main):
    try:
        output = run_main(
            ["--skip-bootstrap", "--save-setting", "relativenumber=true", "--list-settings"]
        )
        assert "  relativenumber = True" in output.out
        saved = json.loads(settings.get_json_path().read_text(encoding="utf-8"))
        assert saved == {"relativenumber": True}

        output = run_main(["--skip-bootstrap", "--list-settings"])
        assert "  relativenumber = True" in output.out
    finally:
        settings.get_json_path().unlink(missing_ok=True)


def test_save_setting_errors(run_main):
    output = run_main(["--skip-bootstrap", "--save-setting", "number=1"], 2)
    expected = "--save-setting 'number=1': value of 'number' must be of type <class 'bool'>, not 1"
    assert expected in output.err
    output = run_main(["--skip-bootstrap", "--save-setting", "number"], 2)
    assert "should be NAME=VALUE" in output.err
    assert not settings.get_json_path().exists()
