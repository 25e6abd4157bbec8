"""Credential materialization for git and the prefetch tool.

Copies mounted credential files into the home directory where git and
cachi2 look for them. Failures raise AuthSetupError; callers treat it as a
warning since public sources need no credentials.
"""

from __future__ import annotations

import logging
import shutil
from pathlib import Path

from monolithic_builder.errors import AuthSetupError

logger = logging.getLogger(__name__)

GIT_AUTH_FILES = (".git-credentials", ".gitconfig")
NETRC_FILE = ".netrc"


def _copy_private(src: Path, dst: Path) -> None:
    shutil.copyfile(src, dst)
    dst.chmod(0o600)


def materialize_credentials(
    git_auth_path: str = "",
    netrc_path: str = "",
    home: Path | None = None,
) -> list[Path]:
    """Copy git and netrc credentials into ``home``.

    Args:
        git_auth_path: Directory with ``.git-credentials``/``.gitconfig``.
        netrc_path: Directory with a ``.netrc`` file.
        home: Target directory (defaults to the user's home).

    Returns:
        Paths of the files written.

    Raises:
        AuthSetupError: If a configured directory is missing or a copy failed.
    """
    if not git_auth_path and not netrc_path:
        return []

    target = home or Path.home()
    written: list[Path] = []
    sources: list[Path] = []

    if git_auth_path:
        auth_dir = Path(git_auth_path)
        if not auth_dir.is_dir():
            raise AuthSetupError(f"Git auth path is not a directory: {auth_dir}")
        sources.extend(auth_dir / name for name in GIT_AUTH_FILES)

    if netrc_path:
        netrc_dir = Path(netrc_path)
        if not netrc_dir.is_dir():
            raise AuthSetupError(f"Netrc path is not a directory: {netrc_dir}")
        sources.append(netrc_dir / NETRC_FILE)

    try:
        target.mkdir(parents=True, exist_ok=True)
        for src in sources:
            if not src.is_file():
                continue
            dst = target / src.name
            _copy_private(src, dst)
            written.append(dst)
    except OSError as e:
        raise AuthSetupError(f"Failed to materialize credentials: {e}") from e

    logger.debug("Materialized credential files: %s", [str(p) for p in written])
    return written


__all__ = ["GIT_AUTH_FILES", "NETRC_FILE", "materialize_credentials"]
