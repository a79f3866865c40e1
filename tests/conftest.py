import logging
import operator
import os
import subprocess
import sys
import tempfile
import textwrap

import platformdirs
import pytest

from bramble import dirs, settings
from bramble.config import BindingSpec, BootstrapConfig, ExtensionDescriptor, StartupConfig


class MonkeypatchedPlatformDirs(platformdirs.PlatformDirs):
    user_cache_dir = property(operator.attrgetter("_cache"))
    user_config_dir = property(operator.attrgetter("_config"))
    user_data_dir = property(operator.attrgetter("_data"))
    user_log_dir = property(operator.attrgetter("_logs"))


@pytest.fixture(scope="session", autouse=True)
def monkeypatch_dirs():
    with tempfile.TemporaryDirectory() as d:
        # This is a hack because:
        #   - pytest monkeypatch fixture doesn't work (not for scope='session')
        #   - assigning to dirs.user_cache_dir doesn't work (platformdirs uses @property)
        #   - "bramble.dirs = blahblah" doesn't work (from bramble import dirs)
        dirs.__class__ = MonkeypatchedPlatformDirs
        dirs._cache = os.path.join(d, "cache")
        dirs._config = os.path.join(d, "config")
        dirs._data = os.path.join(d, "data")
        dirs._logs = os.path.join(d, "logs")
        assert dirs.user_cache_dir.startswith(d)
        assert str(dirs.user_config_path).startswith(d)
        yield


@pytest.fixture(scope="function", autouse=True)
def check_nothing_logged(request):
    if "caplog" in request.fixturenames:
        # Test uses caplog fixture, expects to get logging errors
        yield
    else:
        # Fail test if it logs an error
        def emit(record: logging.LogRecord):
            raise RuntimeError(f"test logged error: {record}")

        handler = logging.Handler()
        handler.setLevel(logging.ERROR)
        handler.emit = emit
        logging.getLogger().addHandler(handler)
        yield
        logging.getLogger().removeHandler(handler)


@pytest.fixture
def settings_json(monkeypatch, tmp_path):
    path = tmp_path / "settings.json"
    monkeypatch.setattr(settings, "get_json_path", (lambda: path))
    return path


@pytest.fixture
def extension_dir(tmp_path):
    path = tmp_path / "extensions"
    path.mkdir()
    return path


# Extensions written with this have a module-level list "calls" that tests can look at.
_FAKE_EXTENSION_TEMPLATE = """
from bramble.extensionloader import Extension, ExtensionUnavailable

calls = []


class FakeExtension(Extension):
    def configure(self, options):
        calls.append(("configure", options))
{configure}

    def get_actions(self):
        return {{
            name: (lambda context, name=name: print(f"{{__name__}}: {{name}}", file=context.output))
            for name in {actions!r}
        }}


def load():
    calls.append(("load",))
{load}
    return FakeExtension()
"""


@pytest.fixture
def write_extension(extension_dir):
    def actually_write_extension(name, *, actions=("x",), configure="", load=""):
        code = _FAKE_EXTENSION_TEMPLATE.format(
            configure=textwrap.indent(textwrap.dedent(configure), " " * 8),
            load=textwrap.indent(textwrap.dedent(load), " " * 4),
            actions=list(actions),
        )
        (extension_dir / f"{name}.py").write_text(code)

    return actually_write_extension


@pytest.fixture
def make_config(tmp_path):
    def actually_make_config(*extensions, bindings=(), options=None, diagnostics=None):
        descriptors = []
        for extension in extensions:
            if isinstance(extension, str):
                extension = (extension, [])
            name, binding_specs, *rest = extension
            descriptors.append(
                ExtensionDescriptor(
                    name,
                    options=(rest[0] if rest else {}),
                    bindings=[BindingSpec(**spec) for spec in binding_specs],
                )
            )
        return StartupConfig(
            bootstrap=BootstrapConfig(
                url="https://example.com/manager.git", path=str(tmp_path / "manager")
            ),
            options=(options or {}),
            extensions=descriptors,
            bindings=[BindingSpec(**spec) for spec in bindings],
            diagnostics=(diagnostics or {}),
        )

    return actually_make_config


@pytest.fixture
def run_bramble():
    def actually_run_bramble(args, expected_exit_status):
        run_result = subprocess.run(
            [sys.executable, "-m", "bramble"] + args,
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
            encoding="utf-8",
        )
        assert run_result.returncode == expected_exit_status
        return run_result.stdout

    return actually_run_bramble
