"""Bramble wires optional editor extensions together on startup.

You are probably reading this because you want to learn how Bramble loads
extensions or write one yourself. Start from `bramble.extensionloader`, it
documents what an extension module must define.
"""

import os
import sys

import platformdirs

version_info = (2024, 5, 2)
__version__ = "%d.%02d.%02d" % version_info
__author__ = "Akuli"
__copyright__ = "Copyright (c) 2017-2024 Akuli"
__license__ = "MIT"

if sys.platform in {"win32", "darwin"}:
    # these platforms like path names like "Program Files" or "Application Support"
    dirs = platformdirs.PlatformDirs("Bramble", "Akuli")
else:
    # By default, platformdirs places logs to a weird place ~/.local/state/bramble/log.
    # See https://github.com/platformdirs/platformdirs/issues/106
    class _BramblePlatformDirs(platformdirs.PlatformDirs):  # type: ignore
        @property
        def user_log_dir(self) -> str:
            return os.path.join(self.user_cache_dir, "log")

    dirs = _BramblePlatformDirs("bramble", "akuli")
