"""Git notes as a key-value store.

NotesStore is the only place vouch reads or writes notes. Content is keyed by
(notes ref, object id); refs live below ``refs/notes/<root>/``. Every ref and
object id is validated before it reaches git, and bulk deletion is confined to
the reserved root.
"""

import logging
from pathlib import Path

from ..constants import NOTES_ROOT
from .git import GitError, execute_git
from .refs import (
    UnsafeArgumentError,
    ensure_within_namespace,
    full_notes_ref,
    validate_git_ref,
    validate_object_id,
)

logger = logging.getLogger(__name__)


class NotesStore:
    """Validated wrapper over ``git notes`` and ``git for-each-ref``.

    Write failures are reported as ``False`` and read failures as ``None``;
    only invalid input raises.
    """

    def __init__(self, cwd: Path | None = None, root: str = NOTES_ROOT) -> None:
        validate_git_ref(root)
        self.cwd = cwd
        self.root = root

    def _git(self, *args: str, input: str | None = None) -> tuple[bool, str]:
        try:
            result = execute_git(*args, cwd=self.cwd, input=input)
        except GitError as e:
            logger.debug("git notes call failed: %s", e)
            return False, ""
        if not result.ok:
            logger.debug("git %s: %s", " ".join(args), result.stderr)
        return result.ok, result.stdout

    def put(self, ref: str, object_id: str, content: str, force: bool = False) -> bool:
        """Attach ``content`` to ``object_id`` under ``ref``.

        Without ``force`` an existing note makes this fail. With it, the last
        writer wins.
        """
        validate_git_ref(ref)
        validate_object_id(object_id)
        args = ["notes", f"--ref={ref}", "add"]
        if force:
            args.append("-f")
        args.extend(["-F", "-", object_id])
        ok, _ = self._git(*args, input=content)
        return ok

    def get(self, ref: str, object_id: str) -> str | None:
        """Return the note content, or None if there is no note."""
        validate_git_ref(ref)
        validate_object_id(object_id)
        ok, stdout = self._git("notes", f"--ref={ref}", "show", object_id)
        return stdout if ok else None

    def has(self, ref: str, object_id: str) -> bool:
        return self.get(ref, object_id) is not None

    def list_notes(self, ref: str) -> list[tuple[str, str]]:
        """List ``(object_id, content)`` for every note under ``ref``.

        Notes that disappear or fail to read between listing and reading
        are skipped.
        """
        validate_git_ref(ref)
        ok, stdout = self._git("notes", f"--ref={ref}", "list")
        if not ok or not stdout:
            return []

        notes: list[tuple[str, str]] = []
        for line in stdout.splitlines():
            parts = line.split()
            if len(parts) != 2:
                continue
            object_id = parts[1]
            try:
                content = self.get(ref, object_id)
            except UnsafeArgumentError as e:
                logger.warning("Skipping note with unexpected object id: %s", e)
                continue
            if content is not None:
                notes.append((object_id, content))
        return notes

    def remove(self, ref: str, object_id: str) -> bool:
        """Remove one note. Returns False if it did not exist."""
        validate_git_ref(ref)
        validate_object_id(object_id)
        ok, _ = self._git("notes", f"--ref={ref}", "remove", object_id)
        return ok

    def list_refs(self, prefix: str) -> list[str]:
        """List full notes ref names at or below ``prefix``."""
        validate_git_ref(prefix)
        ok, stdout = self._git("for-each-ref", "--format=%(refname)", full_notes_ref(prefix))
        if not ok or not stdout:
            return []
        return [line for line in stdout.splitlines() if line]

    def remove_all(self, prefix: str) -> int:
        """Delete every notes ref below ``prefix``.

        Returns:
            Number of refs deleted

        Raises:
            NamespaceError: If ``prefix`` is not strictly below the root
        """
        full_prefix = ensure_within_namespace(prefix, self.root)

        deleted = 0
        for ref in self.list_refs(full_prefix):
            # Re-check each entry: the listing may have changed underneath us
            try:
                ensure_within_namespace(ref, self.root)
            except UnsafeArgumentError as e:
                logger.warning("Skipping ref during bulk removal: %s", e)
                continue
            ok, _ = self._git("update-ref", "-d", ref)
            if ok:
                deleted += 1
        return deleted
