"""Task result persistence.

Each named result is one file under the results directory holding the raw
value, no trailing newline. Files are replaced atomically so a reader never
sees a partially written value; writing a name again replaces it.
"""

from __future__ import annotations

import logging
import os
import tempfile
from pathlib import Path

logger = logging.getLogger(__name__)


class ResultWriter:
    """Writes named single-valued results to a directory.

    Args:
        results_dir: Directory receiving one file per result name.
    """

    def __init__(self, results_dir: Path) -> None:
        self.results_dir = results_dir
        self.written: dict[str, str] = {}

    def write(self, name: str, value: str) -> Path:
        """Write (or overwrite) one result.

        Args:
            name: Result name, used as the file name.
            value: Raw result value.

        Returns:
            Path of the result file.

        Raises:
            OSError: If the file could not be written.
        """
        if not name or "/" in name or name in (".", ".."):
            raise ValueError(f"Invalid result name: {name!r}")

        self.results_dir.mkdir(parents=True, exist_ok=True)
        path = self.results_dir / name

        fd, tmp_name = tempfile.mkstemp(dir=self.results_dir, prefix=f".{name}.")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(value)
            os.chmod(tmp_name, 0o644)
            os.replace(tmp_name, path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise

        self.written[name] = value
        logger.debug("Wrote result %s=%s", name, value)
        return path


__all__ = ["ResultWriter"]
