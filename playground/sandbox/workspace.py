"""Per-job scratch directories.

Every job gets its own directory under the configured jobs root. Submitted
file names are untrusted and are reduced to ``[A-Za-z0-9._-]`` before they
touch the filesystem, so nothing can be written outside the job directory.
"""

import logging
import re
import shutil
import uuid
from collections.abc import Iterable
from pathlib import Path

from playground.models.execution import SubmittedFile

_logger = logging.getLogger("playground.sandbox.workspace")

STDIN_FILENAME = "input.txt"

_UNSAFE_CHARS = re.compile(r"[^a-zA-Z0-9._-]")


def sanitize_name(name: str) -> str:
    return _UNSAFE_CHARS.sub("", name or "")


def new_job_id() -> str:
    return uuid.uuid4().hex


class Workspace:
    def __init__(self, root: Path | str, job_id: str | None = None) -> None:
        self.job_id = job_id or new_job_id()
        self.root = Path(root)
        self.path = self.root / self.job_id

    def create(self) -> Path:
        self.path.mkdir(parents=True, exist_ok=True)
        return self.path

    def materialize(self, files: Iterable[SubmittedFile], stdin: str | None = None) -> list[str]:
        """Write the job's files and optional stdin; return the names written.

        Names that sanitize to nothing or to dots only (``.``, ``..``) are
        skipped. Later files with the same sanitized name overwrite earlier
        ones.
        """
        written: list[str] = []
        for file in files:
            safe_name = sanitize_name(file.name)
            if not safe_name.strip("."):
                _logger.debug("workspace.skip job=%s name=%r", self.job_id, file.name)
                continue
            (self.path / safe_name).write_text(file.content, encoding="utf-8")
            if safe_name not in written:
                written.append(safe_name)

        if stdin:
            self.stdin_path.write_text(stdin, encoding="utf-8")
        return written

    @property
    def stdin_path(self) -> Path:
        return self.path / STDIN_FILENAME

    def has_stdin(self) -> bool:
        return self.stdin_path.is_file()

    def exists(self) -> bool:
        return self.path.is_dir()

    def destroy(self) -> None:
        """Remove the directory tree. Never raises."""
        try:
            shutil.rmtree(self.path)
        except FileNotFoundError:
            pass
        except OSError as e:
            _logger.warning("workspace.destroy failed job=%s err=%r", self.job_id, e)

    def __repr__(self) -> str:
        return f"Workspace({self.path})"
