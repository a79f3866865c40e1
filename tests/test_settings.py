import json
import sys
from pathlib import Path

import pytest

from bramble import settings
from bramble.settings import Settings


def test_json_path_is_not_in_home():
    # We don't clear the user's settings, bramble.dirs is monkeypatched
    if sys.platform == "win32":
        assert "Temp" in settings.get_json_path().parts
    else:
        assert Path.home() not in settings.get_json_path().parents


def load_from_json_string(json_string: str, obj: Settings) -> None:
    with settings.get_json_path().open("x", encoding="utf-8") as file:
        file.write(json_string)
    settings.load(obj)


def save_and_read_file(obj: Settings) -> object:
    settings.save(obj)
    with settings.get_json_path().open("r", encoding="utf-8") as file:
        return json.load(file)


def test_add_option_and_get_and_set():
    obj = Settings()
    obj.add_option("how_many_foos", type=int, default=123)
    obj.add_option("bar_message", type=str, default="hello")

    assert obj.get("how_many_foos", int) == 123
    assert obj.get("bar_message", str) == "hello"
    obj.set("how_many_foos", 456)
    obj.set("bar_message", "bla")
    assert obj.get("how_many_foos", int) == 456
    assert obj.get("bar_message", str) == "bla"


# Consider this situation:
#   - User installs an extension that adds an option
#   - User uninstalls the extension, which leaves the option to the settings file
#   - User starts Bramble again
#
# Even if the extension is installed, reading the file happens before add_option()
# is called.
def test_unknown_option_in_settings_file(settings_json):
    obj = Settings()
    load_from_json_string('{"foo": "custom", "unknown": "hello"}', obj)
    with pytest.raises(ValueError):
        obj.get("foo", str)

    obj.add_option("foo", type=str, default="default")
    assert obj.get("foo", str) == "custom"
    obj.set("foo", "default")
    assert obj.get("foo", str) == "default"

    assert save_and_read_file(obj) == {"unknown": "hello"}


def test_wrong_type():
    obj = Settings()
    obj.add_option("magic_message", type=str, default="bla")

    with pytest.raises(TypeError, match=r"wrong type <class 'int'> specified to .get\(\)"):
        obj.get("magic_message", int)
    with pytest.raises(TypeError, match=r"must be of type <class 'str'>, not 123"):
        obj.set("magic_message", 123)

    # bool is not int here
    obj.add_option("count", type=int, default=1)
    with pytest.raises(TypeError):
        obj.set("count", True)


def test_bad_value_in_settings_file(settings_json, caplog):
    obj = Settings()
    load_from_json_string('{"count": "lol"}', obj)
    obj.add_option("count", type=int, default=3)
    assert obj.get("count", int) == 3
    assert "setting 'count' to 'lol' failed, falling back to default: 3" in caplog.text


def test_broken_settings_file(settings_json, caplog):
    obj = Settings()
    load_from_json_string("[1, 2, 3]", obj)
    assert "expected a JSON object" in caplog.text


def test_name_collision():
    obj = Settings()
    obj.add_option("omg", type=str, default="bla")
    with pytest.raises(RuntimeError, match="^there's already an option named 'omg'$"):
        obj.add_option("omg", type=str, default="bla")


def test_only_changed_values_are_saved(settings_json):
    obj = Settings()
    load_from_json_string('{"foo": "custom", "unknown": "hello"}', obj)
    obj.add_option("foo", type=str, default="default")
    obj.add_option("names", type=list[str], default=[])
    obj.add_option("count", type=int, default=3)
    obj.set("names", ["a", "b"])

    assert save_and_read_file(obj) == {"foo": "custom", "names": ["a", "b"], "unknown": "hello"}


def test_get_returns_a_copy():
    obj = Settings()
    obj.add_option("names", type=list[str], default=["a"])
    obj.get("names", list[str]).append("b")
    assert obj.get("names", list[str]) == ["a"]


def test_type_of_value():
    assert settings.type_of_value(True) == bool
    assert settings.type_of_value(1) == int
    assert settings.type_of_value("x") == str
    assert settings.type_of_value(["x"]) == list[str]
    assert settings.type_of_value([]) == list[str]
    with pytest.raises(TypeError):
        settings.type_of_value(1.5)
    with pytest.raises(TypeError):
        settings.type_of_value([1])


def test_debug_dump(capsys, settings_json):
    obj = Settings()
    load_from_json_string('{"unknown": "hello"}', obj)
    obj.add_option("number", type=bool, default=True)
    obj.debug_dump()

    output = capsys.readouterr().out
    assert "1 known options (add_option called)" in output
    assert "  number = True    (type=<class 'bool'>, default=True)" in output
    assert "  unknown = 'hello'" in output
