"""Kubeconfig path resolution.

The target file is chosen the way kubectl chooses the file it writes to:

1. an explicit path, when given
2. the ``KUBECONFIG`` list: the first existing entry, else the first entry
3. ``~/.kube/config``
"""

import os
import sys
from collections.abc import Mapping
from pathlib import Path


KUBECONFIG_ENV = "KUBECONFIG"


def is_windows() -> bool:
    return sys.platform == "win32"


def get_secure_file_mode() -> int:
    """File mode for kubeconfig and backup files.

    Windows ignores POSIX permission bits, so the default mode is used there.
    """
    return 0o666 if is_windows() else 0o600


def get_secure_dir_mode() -> int:
    """Directory mode for the kubeconfig parent directory."""
    return 0o777 if is_windows() else 0o700


def get_default_kubeconfig_path() -> Path:
    """Get the default kubeconfig path for the current platform.

    Returns:
        ``~/.kube/config`` (``%USERPROFILE%\\.kube\\config`` on Windows)
    """
    return Path.home() / ".kube" / "config"


def expand_path(path: str) -> Path:
    """Expand a user-supplied kubeconfig path.

    A leading ``~`` is replaced by the home directory. After it, both ``/`` and
    ``\\`` are accepted as separators and converted to the platform's one.

    Args:
        path: Path as typed by the user, empty for the default location

    Returns:
        Normalized path
    """
    if not path:
        return get_default_kubeconfig_path()

    if path.startswith("~"):
        home = Path.home()
        if path == "~":
            return home

        remaining = path[2:] if path[1] in ("/", "\\") else path[1:]
        remaining = remaining.replace("\\", "/")
        return Path(os.path.normpath(home.joinpath(*remaining.split("/"))))

    return Path(os.path.normpath(path))


def resolve_kubeconfig_path(
    explicit: str | os.PathLike[str] | None = None,
    environ: Mapping[str, str] | None = None,
) -> Path:
    """Resolve the kubeconfig file to read and write.

    Args:
        explicit: Path given on the command line or in settings
        environ: Environment to read ``KUBECONFIG`` from, defaults to os.environ

    Returns:
        Path of the kubeconfig file
    """
    if explicit:
        return expand_path(os.fspath(explicit))

    env = os.environ if environ is None else environ
    candidates = [
        entry for entry in env.get(KUBECONFIG_ENV, "").split(os.pathsep) if entry
    ]
    if candidates:
        for candidate in candidates:
            path = expand_path(candidate)
            if path.exists():
                return path
        return expand_path(candidates[0])

    return get_default_kubeconfig_path()
