"""Domain models for repository merge runs."""

from __future__ import annotations

import dataclasses
import enum
import typing as typ

from repocleanr.github.models import RepositoryRef

if typ.TYPE_CHECKING:
    import datetime as dt

    from repocleanr.github.models import GitFileMode, RateLimitStatus

__all__ = [
    "BulkWriteResult",
    "FileEncoding",
    "FileEntry",
    "MergeLayout",
    "MergePhase",
    "MergePlan",
    "MergeProgress",
    "MergeRunResult",
    "ReadResult",
    "RepositoryMergeOutcome",
    "RepositoryRef",
    "TransferMethod",
    "TransferResult",
    "TreeSnapshot",
]


class FileEncoding(enum.StrEnum):
    """Encoding of :attr:`FileEntry.content`."""

    UTF8 = "utf8"
    BASE64 = "base64"

    @property
    def blob_encoding(self) -> typ.Literal["utf-8", "base64"]:
        """Return the spelling the blob API expects."""
        return "utf-8" if self is FileEncoding.UTF8 else "base64"


class MergeLayout(enum.StrEnum):
    """Where source files land in the target repository."""

    SEPARATE_FOLDERS = "separate-folders"
    FLAT = "flat"


class MergePhase(enum.StrEnum):
    """Phases published while a merge run progresses."""

    SCANNING = "scanning"
    TRANSFERRING = "transferring"
    DELETING = "deleting"
    COMPLETE = "complete"
    ERROR = "error"


class TransferMethod(enum.StrEnum):
    """How a source repository's files were read."""

    OPTIMIZED = "optimized"
    CONSERVATIVE = "conservative"
    CONSERVATIVE_FALLBACK = "conservative-fallback"


@dataclasses.dataclass(frozen=True, slots=True)
class FileEntry:
    """One file read from a source repository.

    ``path`` is relative to the repository root with ``/`` separators.
    ``content`` is text exactly as the API delivered it; for ``base64``
    entries that is the base64 text. ``mode`` carries the git file mode so
    executables and symlinks survive the transfer.
    """

    path: str
    content: str
    encoding: FileEncoding
    size: int
    source_object_id: str
    mode: GitFileMode = "100644"

    def with_prefix(self, prefix: str) -> FileEntry:
        """Return a copy whose path sits under ``prefix/``."""
        return dataclasses.replace(self, path=f"{prefix}/{self.path}")


@dataclasses.dataclass(frozen=True, slots=True)
class TreeSnapshot:
    """Files of one repository and branch, with read diagnostics."""

    files: tuple[FileEntry, ...] = ()
    branch: str | None = None
    expected_count: int = 0
    skipped: tuple[str, ...] = ()
    failed: tuple[str, ...] = ()
    truncated: bool = False
    skipped_directories: tuple[str, ...] = ()

    def __len__(self) -> int:
        """Return the number of files read."""
        return len(self.files)

    @property
    def is_complete(self) -> bool:
        """Return True when every file the source holds was read."""
        return (
            len(self.files) == self.expected_count
            and not self.skipped
            and not self.failed
            and not self.truncated
            and not self.skipped_directories
        )

    def incompleteness(self) -> list[str]:
        """Describe why the snapshot is not a complete copy of the source."""
        reasons: list[str] = []
        if self.truncated:
            reasons.append("tree listing was truncated by the API")
        if self.skipped:
            reasons.append(
                f"{len(self.skipped)} file(s) were skipped: "
                + ", ".join(self.skipped)
            )
        if self.failed:
            reasons.append(
                f"{len(self.failed)} file(s) could not be read: "
                + ", ".join(self.failed)
            )
        if self.skipped_directories:
            reasons.append(
                "root-only read left directories behind: "
                + ", ".join(self.skipped_directories)
            )
        return reasons


@dataclasses.dataclass(frozen=True, slots=True)
class ReadResult:
    """Outcome of reading a repository; failure carries an empty snapshot."""

    success: bool
    snapshot: TreeSnapshot = dataclasses.field(default_factory=TreeSnapshot)
    error: str | None = None

    @classmethod
    def failure(cls, error: str) -> ReadResult:
        """Return a failed read."""
        return cls(success=False, error=error)


@dataclasses.dataclass(frozen=True, slots=True)
class MergePlan:
    """User-supplied description of one merge run."""

    source_repos: tuple[RepositoryRef, ...]
    target_repo: RepositoryRef
    layout: MergeLayout = MergeLayout.SEPARATE_FOLDERS
    target_branch: str = "main"
    conservative_mode: bool = False
    conservative_delay_seconds: int = 15
    empty_placeholder: bool = False

    def target_path(self, source: RepositoryRef, entry: FileEntry) -> FileEntry:
        """Return ``entry`` with its path rewritten for the plan's layout."""
        if self.layout is MergeLayout.SEPARATE_FOLDERS:
            return entry.with_prefix(source.name)
        return entry


@dataclasses.dataclass(slots=True)
class MergeProgress:
    """Running state of a merge; written only by the orchestrator."""

    total_repos: int
    phase: MergePhase = MergePhase.SCANNING
    current_repo: RepositoryRef | None = None
    current_repo_index: int = 0
    transferred_file_count: int = 0
    skipped_file_count: int = 0
    errors: list[str] = dataclasses.field(default_factory=list)

    def snapshot(self) -> MergeProgress:
        """Return an independent copy for subscribers."""
        return dataclasses.replace(self, errors=list(self.errors))


@dataclasses.dataclass(frozen=True, slots=True)
class BulkWriteResult:
    """Result of one single-commit write into the target repository."""

    success: bool
    files_processed: int
    total_files: int
    commit_sha: str | None = None
    branch: str | None = None
    error: str | None = None


@dataclasses.dataclass(frozen=True, slots=True)
class TransferResult:
    """Aggregate of one or more chunk commits."""

    success: bool
    transferred_files: int
    total_files: int
    chunk_count: int = 1
    failed_chunks: tuple[int, ...] = ()
    commit_shas: tuple[str, ...] = ()
    errors: tuple[str, ...] = ()


@dataclasses.dataclass(frozen=True, slots=True)
class RepositoryMergeOutcome:
    """Per-source result, appended once to the run's outcome list."""

    repo: RepositoryRef
    success: bool
    transferred_files: int
    method: TransferMethod
    errors: tuple[str, ...] = ()
    skipped_files: int = 0
    deleted: bool = False


@dataclasses.dataclass(frozen=True, slots=True)
class MergeRunResult:
    """Summary returned by :meth:`MergeOrchestrator.run`."""

    success: bool
    phase: MergePhase
    outcomes: tuple[RepositoryMergeOutcome, ...]
    errors: tuple[str, ...]
    transferred_files: int
    skipped_files: int
    duration: dt.timedelta
    halted_at: RepositoryRef | None = None
    cancelled: bool = False
    rate_limit: RateLimitStatus | None = None

    @property
    def deleted_repos(self) -> tuple[RepositoryRef, ...]:
        """Return the sources that were deleted during the run."""
        return tuple(outcome.repo for outcome in self.outcomes if outcome.deleted)
