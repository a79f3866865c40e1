from __future__ import annotations

import os
import re
import sys
from typing import Any, Iterator

from setuptools import find_packages, setup

assert sys.version_info >= (3, 10), "Bramble requires Python 3.10 or newer"


def get_requirements(filename: str) -> Iterator[str]:
    with open(filename, "r") as file:
        for line in map(str.strip, file):
            if (not line.startswith("#")) and line:
                yield line


def find_metadata() -> dict[Any, Any]:
    with open(os.path.join("bramble", "__init__.py")) as file:
        content = file.read()

    result = dict(
        re.findall(r"""^__(author|copyright|license)__ = ['"](.*)['"]$""", content, re.MULTILINE)
    )
    assert result.keys() == {"author", "copyright", "license"}, result

    # version is defined like this: __version__ = '%d.%02d.%02d' % version_info
    match = re.search(r"^version_info = \((\d+), (\d+), (\d+)\)", content, re.MULTILINE)
    assert match is not None
    result["version"] = "%s.%s.%s" % tuple(match.groups())

    return result


setup(
    name="Bramble",
    description="Loads optional editor extensions from a preset and binds keys to them",
    url="https://github.com/Akuli/bramble",
    python_requires=">=3.10",
    install_requires=list(get_requirements("requirements.txt")),
    extras_require={
        "test": list(get_requirements("requirements-dev.txt")),
        "extensions": ["tree-sitter-languages>=1.10.0"],
    },
    packages=find_packages(include=["bramble", "bramble.*"]),
    package_data={"bramble": ["presets/*.toml"]},
    entry_points={"console_scripts": ["bramble = bramble.__main__:main"]},
    zip_safe=False,
    **find_metadata(),
)
