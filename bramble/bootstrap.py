"""Download the extension manager and extension sources.

The manager is the one thing that is not optional. If it isn't on disk and
can't be downloaded, `BootstrapError` is raised and no extensions are loaded.
Extension sources listed in `[[install]]` are optional, so failing to install
one of them is only logged.
"""
from __future__ import annotations

import io
import logging
import shutil
import subprocess
import tempfile
import zipfile
from pathlib import Path

import requests

from bramble import dirs
from bramble.config import BootstrapConfig, ExtensionSource

log = logging.getLogger(__name__)


class BootstrapError(Exception):
    """The manager couldn't be fetched. Shown to the user without a traceback."""


def _git_clone(url: str, branch: str | None, target: Path) -> None:
    command = ["git", "clone", "--filter=blob:none", url]
    if branch is not None:
        command.append(f"--branch={branch}")
    command.append(str(target))

    log.info(f"running: {' '.join(command)}")
    try:
        subprocess.run(
            command, check=True, stdout=subprocess.PIPE, stderr=subprocess.STDOUT, text=True
        )
    except FileNotFoundError as e:
        raise BootstrapError(f"cannot run git: {e}") from e
    except subprocess.CalledProcessError as e:
        raise BootstrapError(
            f"git clone of {url} failed with status {e.returncode}:\n{e.stdout}"
        ) from e


def get_archive_url(url: str, branch: str) -> str:
    # github has a "Download ZIP" button that gives URLs like these
    return url.removesuffix("/").removesuffix(".git") + f"/archive/refs/heads/{branch}.zip"


def _download_archive(url: str, branch: str, target: Path) -> None:
    zip_url = get_archive_url(url, branch)
    log.info(f"downloading {zip_url}")
    try:
        response = requests.get(zip_url, timeout=30)
        response.raise_for_status()
    except requests.RequestException as e:
        raise BootstrapError(f"downloading {zip_url} failed: {e}") from e

    # the whole zip must fit in ram, but that's ok, zipfile.ZipFile wants to seek the file
    try:
        with zipfile.ZipFile(io.BytesIO(response.content)) as zip_file:
            # everything is in a subfolder named <repo>-<branch>/
            top_levels = {name.split("/")[0] for name in zip_file.namelist()}
            if len(top_levels) != 1:
                raise BootstrapError(
                    f"expected one folder in {zip_url}, found: {', '.join(sorted(top_levels))}"
                )
            [subfolder] = top_levels

            # extract next to the target, so that moving it doesn't need copying
            with tempfile.TemporaryDirectory(dir=target.parent) as tempdir:
                zip_file.extractall(tempdir)
                (Path(tempdir) / subfolder).rename(target)
    except zipfile.BadZipFile as e:
        raise BootstrapError(f"{zip_url} is not a valid zip file: {e}") from e


def fetch(url: str, branch: str | None, method: str, target: Path) -> None:
    """Download a repository into `target`, which must not exist yet."""
    assert not target.exists()
    target.parent.mkdir(parents=True, exist_ok=True)

    if method == "git":
        _git_clone(url, branch, target)
    elif method == "archive":
        _download_archive(url, branch or "main", target)
    else:
        raise BootstrapError(f"unknown download method {method!r}, should be 'git' or 'archive'")


def ensure_manager(config: BootstrapConfig) -> Path:
    """Download the manager unless it's already there. Returns its location."""
    path = config.get_path()
    if path.exists():
        log.debug(f"manager found in '{path}'")
        return path

    log.info(f"'{path}' not found, installing the manager from {config.url} ({config.branch})")
    fetch(config.url, config.branch, config.method, path)
    return path


def get_sources_dir() -> Path:
    return dirs.user_data_path / "extensions"


def _run_build_command(source: ExtensionSource, path: Path) -> None:
    assert source.build is not None
    try:
        output = subprocess.check_output(
            source.build, cwd=path, stderr=subprocess.STDOUT, text=True
        )
        log.info(f"output from {source.build} in '{path}':\n{output}")
    except FileNotFoundError as e:
        log.error(f"cannot run {source.build} for {source.name!r}: {e}")
    except subprocess.CalledProcessError as e:
        log.error(f"{source.build} failed for {source.name!r} with status {e.returncode}:\n{e.output}")


def install_sources(sources: list[ExtensionSource], method: str = "git") -> list[Path]:
    """Install missing extension sources. Returns folders that exist afterwards."""
    result = []
    for source in sources:
        path = get_sources_dir() / source.name
        if not path.exists():
            try:
                fetch(source.url, source.branch, method, path)
            except BootstrapError as e:
                log.error(f"installing extension source {source.name!r} failed: {e}")
                continue
            if source.build is not None:
                _run_build_command(source, path)
        result.append(path)
    return result
