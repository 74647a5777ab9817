"""
Batch file processing operations for Batch Retagger
Rewrites the ID3 tags of many files, one at a time, isolating failures per file
"""
import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from config import DEFAULT_FILENAME_TEMPLATE, logger
from tagging.album_art.resolver import CoverArtCache
from tagging.exceptions import CoverArtError, UnsupportedFormatError
from tagging.file_utils import check_format_support
from tagging.metadata.fields import merge_fields
from tagging.metadata.reader import read_metadata_bytes
from tagging.metadata.stripper import strip_id3v2_tags
from tagging.metadata.writer import write_tags
from tagging.naming import generate_filename


class FileState(Enum):
    """Lifecycle of a single file within a batch"""
    PENDING = "pending"
    READING = "reading"
    WRITING = "writing"
    DONE = "done"
    FAILED = "failed"
    SKIPPED = "skipped"
    CANCELLED = "cancelled"


ALLOWED_TRANSITIONS = {
    FileState.PENDING: (FileState.READING, FileState.CANCELLED, FileState.FAILED),
    FileState.READING: (FileState.WRITING, FileState.SKIPPED, FileState.FAILED, FileState.CANCELLED),
    FileState.WRITING: (FileState.DONE, FileState.FAILED),
}

# Progress phases reported to callers for each state
PHASES = {
    FileState.READING: 'reading',
    FileState.WRITING: 'writing',
    FileState.DONE: 'completed',
    FileState.SKIPPED: 'skipped',
    FileState.FAILED: 'error',
    FileState.CANCELLED: 'cancelled'
}


class CancellationToken:
    """Set from any thread to stop a batch from starting further work"""

    def __init__(self):
        self._event = threading.Event()

    def cancel(self):
        self._event.set()

    @property
    def cancelled(self):
        return self._event.is_set()


@dataclass
class ProgressEvent:
    current: int
    total: int
    filename: str
    phase: str
    error: Optional[str] = None

    def to_dict(self):
        data = {
            'current': self.current,
            'total': self.total,
            'filename': self.filename,
            'phase': self.phase
        }
        if self.error:
            data['error'] = self.error
        return data


@dataclass
class BatchOptions:
    """Per-run settings for process_batch"""
    cover: Any = None
    per_file_overrides: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    per_file_covers: Dict[str, Any] = field(default_factory=dict)
    filename_template: str = DEFAULT_FILENAME_TEMPLATE
    require_cover: bool = False
    keep_existing_cover: bool = False
    file_ids: Optional[List[str]] = None
    blob_lookup: Optional[Callable] = None


@dataclass
class ProcessingResult:
    """Outcome for one file; output is never persisted"""
    file_id: str
    original_name: str
    new_name: str
    success: bool
    status: FileState
    error: Optional[str] = None
    fields: Optional[Dict[str, Any]] = None
    output: Optional[bytes] = field(default=None, repr=False)
    processed_at: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())

    def __post_init__(self):
        if self.success and (self.output is None or self.error):
            raise ValueError("A successful result needs output and no error")
        if not self.success and (self.output is not None or not self.error):
            raise ValueError("A failed result needs an error and no output")

    def to_summary(self):
        """Projection that is safe to persist"""
        return {
            'originalName': self.original_name,
            'newName': self.new_name,
            'success': self.success,
            'status': 'success' if self.success else self.status.value,
            'error': self.error,
            'processedAt': self.processed_at
        }


class FileTask:
    """Tracks one file through pending -> reading -> writing -> done|failed|skipped"""

    def __init__(self, index, file_id, handle):
        self.index = index
        self.file_id = file_id
        self.handle = handle
        self.name = handle.name
        self.state = FileState.PENDING

    def advance(self, new_state):
        if new_state not in ALLOWED_TRANSITIONS.get(self.state, ()):
            raise RuntimeError(f"Invalid transition for {self.name}: {self.state.value} -> {new_state.value}")
        self.state = new_state

    def fail(self, message, status=FileState.FAILED):
        self.advance(status)
        return ProcessingResult(self.file_id, self.name, self.name, False, status, error=message)


def _emit(on_progress, task, total, error=None):
    if on_progress is None:
        return
    event = ProgressEvent(task.index + 1, total, task.name, PHASES.get(task.state, task.state.value), error)
    try:
        on_progress(event)
    except Exception as e:
        logger.error(f"Progress callback failed for {task.name}: {e}")


def _process_file(task, override_fields, options, covers, cancel_token, on_progress, total):
    """Run one file through read, strip, resolve, write and naming"""
    task.advance(FileState.READING)
    _emit(on_progress, task, total)

    support = check_format_support(task.name)
    if not support['write']:
        if support['read']:
            message = f"{support['name']} format is read-only. Only MP3 files can be modified."
        else:
            message = f"{support['name']} format is not supported. Only MP3 files can be modified."
        raise UnsupportedFormatError(message, support['name'].lower())

    raw = task.handle.read()
    existing = read_metadata_bytes(raw, task.name)

    # A per-file override replaces the batch override
    per_file = options.per_file_overrides.get(task.name)
    fields = merge_fields(existing, per_file if per_file is not None else override_fields)

    if cancel_token is not None and cancel_token.cancelled:
        return None

    task.advance(FileState.WRITING)
    _emit(on_progress, task, total)

    payload = strip_id3v2_tags(raw)

    cover_ref = options.per_file_covers.get(task.name, options.cover)
    cover = covers.resolve(cover_ref)
    if cover is None and cover_ref is None and options.keep_existing_cover:
        cover = existing.get('cover_art')
    if cover is None and options.require_cover:
        if cover_ref is not None:
            raise CoverArtError("Cover art is required but could not be loaded")
        raise CoverArtError("Cover art is required but none was provided")

    output = write_tags(payload, fields, cover)
    new_name = generate_filename(fields, task.name, options.filename_template)
    return output, fields, new_name


def process_batch(handles, override_fields=None, options=None, on_progress=None, cancel_token=None):
    """
    Rewrite the tags of every file in order, one file at a time

    Args:
        handles: Ordered list of file handles (objects with name and read())
        override_fields: Field map applied on top of each file's existing tags,
            unless options.per_file_overrides has an entry for that file
        options: BatchOptions
        on_progress: Callable receiving a ProgressEvent when each file
            starts a phase and when it finishes
        cancel_token: CancellationToken; once set no new file is started

    Returns:
        list: One ProcessingResult per handle, in input order

    Raises:
        ValueError: If no handles are given
    """
    if not handles:
        raise ValueError("At least one file is required")

    options = options or BatchOptions()
    file_ids = options.file_ids or [str(i) for i in range(len(handles))]
    if len(file_ids) != len(handles):
        raise ValueError("file_ids must match handles one to one")

    total = len(handles)
    covers = CoverArtCache(options.blob_lookup)
    results: List[ProcessingResult] = []

    logger.info(f"Processing batch of {total} files")

    for index, handle in enumerate(handles):
        task = FileTask(index, file_ids[index], handle)

        if cancel_token is not None and cancel_token.cancelled:
            results.append(task.fail("Batch was cancelled before this file was processed", FileState.CANCELLED))
            _emit(on_progress, task, total)
            continue

        try:
            outcome = _process_file(task, override_fields, options, covers, cancel_token, on_progress, total)
            if outcome is None:
                logger.info(f"Cancelled before writing {task.name}")
                results.append(task.fail("Batch was cancelled before this file was written", FileState.CANCELLED))
                _emit(on_progress, task, total)
                continue

            output, fields, new_name = outcome
            result = ProcessingResult(task.file_id, task.name, new_name, True, FileState.DONE, fields=fields, output=output)
            task.advance(FileState.DONE)
            results.append(result)
            logger.info(f"Successfully updated {task.name} -> {new_name}")
            _emit(on_progress, task, total)

        except UnsupportedFormatError as e:
            logger.warning(f"Skipping {task.name}: {e}")
            results.append(task.fail(str(e), FileState.SKIPPED))
            _emit(on_progress, task, total, str(e))

        except Exception as e:
            logger.error(f"Error processing {task.name}: {e}")
            results.append(task.fail(str(e) or type(e).__name__))
            _emit(on_progress, task, total, str(e))

    succeeded = sum(1 for r in results if r.success)
    logger.info(f"Batch finished: {succeeded}/{total} files updated")
    return results


def failed_handles(handles, results):
    """Handles whose result was not a success, for re-submitting a retry"""
    return [handle for handle, result in zip(handles, results) if not result.success]


def summarize_results(results):
    """Run totals for a finished batch"""
    return {
        'totalFiles': len(results),
        'successfulFiles': sum(1 for r in results if r.success),
        'failedFiles': sum(1 for r in results if r.status == FileState.FAILED),
        'skippedFiles': sum(1 for r in results if r.status == FileState.SKIPPED),
        'cancelledFiles': sum(1 for r in results if r.status == FileState.CANCELLED)
    }
