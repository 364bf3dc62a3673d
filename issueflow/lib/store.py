"""
Artifact storage for issues.

Each issue is a directory of markdown artifacts under either the active
root or the archive root. The store tracks existence, not meaning:

- read() never fails on absence
- write() is create-only, so the audit trail cannot be rewritten
- update_status_header() is the single in-place edit (problem.md status)
- move() relocates a whole issue directory between roots
"""

import errno
import logging
import os
import shutil
import tempfile
from pathlib import Path

from .constants import ARTIFACT_NAMES, ARTIFACT_SUFFIX
from .docparse import replace_header
from .errors import AlreadyExists, ArtifactIOError, MalformedIssue, NotFound

logger = logging.getLogger(__name__)


class ArtifactStore:
    """File-system store rooted at an active and an archive directory."""

    def __init__(self, active_root: Path, archive_root: Path):
        self.active_root = active_root
        self.archive_root = archive_root

    # --- paths -------------------------------------------------------------

    @staticmethod
    def _check_name(name: str) -> None:
        if name not in ARTIFACT_NAMES:
            raise ValueError(f"Unknown artifact: {name}")

    def issue_dir(self, issue_id: str, root: Path | None = None) -> Path:
        return (root or self.active_root) / issue_id

    def artifact_path(self, issue_id: str, name: str, root: Path | None = None) -> Path:
        self._check_name(name)
        return self.issue_dir(issue_id, root) / f"{name}{ARTIFACT_SUFFIX}"

    def locate(self, issue_id: str) -> Path | None:
        """Return the root that currently holds the issue, or None."""
        for root in (self.active_root, self.archive_root):
            if self.issue_dir(issue_id, root).is_dir():
                return root
        return None

    def exists(self, issue_id: str) -> bool:
        return self.locate(issue_id) is not None

    def list_issue_ids(self, root: Path | None = None) -> list[str]:
        base = root or self.active_root
        if not base.is_dir():
            return []
        return sorted(
            d.name for d in base.iterdir()
            if d.is_dir() and not d.name.startswith((".", "_"))
        )

    def list_artifacts(self, issue_id: str, root: Path | None = None) -> dict[str, Path]:
        """Present artifacts in workflow order."""
        present = {}
        for name in ARTIFACT_NAMES:
            path = self.artifact_path(issue_id, name, root)
            if path.is_file():
                present[name] = path
        return present

    # --- read/write --------------------------------------------------------

    def read(self, issue_id: str, name: str, root: Path | None = None) -> tuple[str | None, bool]:
        """Return (content, exists). Absence is a result, not an error."""
        path = self.artifact_path(issue_id, name, root)
        try:
            return path.read_text(), True
        except FileNotFoundError:
            return None, False
        except IsADirectoryError:
            return None, False
        except OSError as e:
            raise ArtifactIOError(f"Cannot read {path}: {e}", issue_id) from e

    def write(self, issue_id: str, name: str, content: str) -> Path:
        """
        Create an artifact in the active root.

        The content is written to a temp file and hard-linked into place, so
        readers never see a partial artifact and an existing one is never
        replaced. Only problem.md may create the issue directory.

        Raises:
            AlreadyExists: artifact already present
            NotFound: issue directory missing (non-problem artifacts)
            ArtifactIOError: disk or permission failure
        """
        path = self.artifact_path(issue_id, name)
        issue_dir = path.parent

        if name == "problem":
            if self.issue_dir(issue_id, self.archive_root).exists():
                raise AlreadyExists(f"Issue '{issue_id}' already exists in the archive", issue_id)
            try:
                issue_dir.mkdir(parents=True, exist_ok=True)
            except OSError as e:
                raise ArtifactIOError(f"Cannot create {issue_dir}: {e}", issue_id) from e
        elif not issue_dir.is_dir():
            raise NotFound(f"Issue directory {issue_dir} does not exist", issue_id)

        if path.exists():
            raise AlreadyExists(f"Artifact {path.name} already exists", issue_id)

        tmp_path = None
        try:
            fd, tmp_name = tempfile.mkstemp(prefix=f".{name}.", suffix=".tmp", dir=issue_dir)
            tmp_path = Path(tmp_name)
            with os.fdopen(fd, "w") as f:
                f.write(content)
                f.flush()
                os.fsync(f.fileno())
            os.link(tmp_path, path)
        except FileExistsError:
            raise AlreadyExists(f"Artifact {path.name} already exists", issue_id) from None
        except OSError as e:
            raise ArtifactIOError(f"Cannot write {path}: {e}", issue_id) from e
        finally:
            if tmp_path is not None:
                tmp_path.unlink(missing_ok=True)

        logger.debug(f"Wrote {path}")
        return path

    def update_status_header(self, issue_id: str, status: str) -> None:
        """Rewrite the Status header of problem.md in the active root."""
        path = self.artifact_path(issue_id, "problem")
        content, exists = self.read(issue_id, "problem")
        if not exists:
            raise NotFound(f"{path} does not exist", issue_id)

        updated = replace_header(content, "Status", status)
        if updated is None:
            raise MalformedIssue(f"{path.name} has no Status header", issue_id)

        tmp_path = None
        try:
            fd, tmp_name = tempfile.mkstemp(prefix=".problem.", suffix=".tmp", dir=path.parent)
            tmp_path = Path(tmp_name)
            with os.fdopen(fd, "w") as f:
                f.write(updated)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_path, path)
            tmp_path = None
        except OSError as e:
            raise ArtifactIOError(f"Cannot update {path}: {e}", issue_id) from e
        finally:
            if tmp_path is not None:
                tmp_path.unlink(missing_ok=True)

    # --- relocation --------------------------------------------------------

    def move(self, issue_id: str, from_root: Path, to_root: Path) -> Path:
        """
        Relocate an issue directory between roots.

        Uses rename, which is atomic on one file system. Across devices the
        directory is copied into a staging name under the destination root
        first, then renamed into place, then the source is removed.

        Raises:
            NotFound: source directory absent
            AlreadyExists: destination directory present
            ArtifactIOError: disk or permission failure
        """
        src = self.issue_dir(issue_id, from_root)
        dest = self.issue_dir(issue_id, to_root)

        if not src.is_dir():
            raise NotFound(f"{src} does not exist", issue_id)
        if dest.exists():
            raise AlreadyExists(f"{dest} already exists", issue_id)

        try:
            to_root.mkdir(parents=True, exist_ok=True)
            os.rename(src, dest)
        except OSError as e:
            if e.errno != errno.EXDEV:
                raise ArtifactIOError(f"Cannot move {src} to {dest}: {e}", issue_id) from e
            self._move_across_devices(issue_id, src, dest)

        logger.info(f"Moved {src} -> {dest}")
        return dest

    def _move_across_devices(self, issue_id: str, src: Path, dest: Path) -> None:
        staging = dest.parent / f".{issue_id}.moving"
        try:
            if staging.exists():
                shutil.rmtree(staging)
            shutil.copytree(src, staging)
            os.rename(staging, dest)
            shutil.rmtree(src)
        except OSError as e:
            raise ArtifactIOError(f"Cannot move {src} to {dest}: {e}", issue_id) from e
