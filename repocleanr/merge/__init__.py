"""Repository merge pipeline."""

from __future__ import annotations

from .cancellation import CancellationToken
from .chunking import ChunkedTransferCoordinator
from .conservative import ConservativeReader
from .errors import MergeCancelledError, MergeError, MergePlanValidationError
from .models import (
    BulkWriteResult,
    FileEncoding,
    FileEntry,
    MergeLayout,
    MergePhase,
    MergePlan,
    MergeProgress,
    MergeRunResult,
    ReadResult,
    RepositoryMergeOutcome,
    RepositoryRef,
    TransferMethod,
    TransferResult,
    TreeSnapshot,
)
from .orchestrator import MergeOrchestrator
from .plan import load_plan, validate_plan
from .progress import ProgressListener, ProgressPublisher
from .reader import TreeReader
from .writer import BulkWriter

__all__ = [
    "BulkWriteResult",
    "BulkWriter",
    "CancellationToken",
    "ChunkedTransferCoordinator",
    "ConservativeReader",
    "FileEncoding",
    "FileEntry",
    "MergeCancelledError",
    "MergeError",
    "MergeLayout",
    "MergeOrchestrator",
    "MergePhase",
    "MergePlan",
    "MergePlanValidationError",
    "MergeProgress",
    "MergeRunResult",
    "ProgressListener",
    "ProgressPublisher",
    "ReadResult",
    "RepositoryMergeOutcome",
    "RepositoryRef",
    "TransferMethod",
    "TransferResult",
    "TreeReader",
    "TreeSnapshot",
    "load_plan",
    "validate_plan",
]
