"""
Processing summary history for Batch Retagger

Only the summary projection of each run is written to disk. File contents
and rewritten outputs never leave memory.
"""
import json
import os
import threading
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from config import MAX_HISTORY_ITEMS, SUMMARY_FILE, logger

# Keys allowed in a persisted per-file entry
SUMMARY_KEYS = ('originalName', 'newName', 'success', 'status', 'error', 'processedAt')


@dataclass
class RunSummary:
    """Persisted record of one finished batch run"""
    id: str
    total_files: int
    successful_files: int
    failed_files: int
    skipped_files: int
    processing_time: float
    start_time: str
    end_time: str
    results: List[Dict[str, Any]] = field(default_factory=list)

    def to_dict(self):
        """Convert to dictionary for JSON serialization"""
        return {
            'id': self.id,
            'totalFiles': self.total_files,
            'successfulFiles': self.successful_files,
            'failedFiles': self.failed_files,
            'skippedFiles': self.skipped_files,
            'processingTime': self.processing_time,
            'startTime': self.start_time,
            'endTime': self.end_time,
            'results': self.results
        }

    @classmethod
    def from_dict(cls, data):
        return cls(
            id=data['id'],
            total_files=data.get('totalFiles', 0),
            successful_files=data.get('successfulFiles', 0),
            failed_files=data.get('failedFiles', 0),
            skipped_files=data.get('skippedFiles', 0),
            processing_time=data.get('processingTime', 0),
            start_time=data.get('startTime', ''),
            end_time=data.get('endTime', ''),
            results=data.get('results', [])
        )


def create_run_summary(results, started_at, finished_at, run_id=None):
    """
    Build a RunSummary from ProcessingResults

    Args:
        results: List of ProcessingResult
        started_at: Run start as a timezone-aware datetime
        finished_at: Run end as a timezone-aware datetime
    """
    entries = []
    for result in results:
        summary = result.to_summary()
        entries.append({key: summary.get(key) for key in SUMMARY_KEYS})

    return RunSummary(
        id=run_id or str(uuid.uuid4()),
        total_files=len(results),
        successful_files=sum(1 for e in entries if e['success']),
        failed_files=sum(1 for e in entries if not e['success'] and e['status'] != 'skipped'),
        skipped_files=sum(1 for e in entries if e['status'] == 'skipped'),
        processing_time=round((finished_at - started_at).total_seconds(), 3),
        start_time=started_at.isoformat(),
        end_time=finished_at.isoformat(),
        results=entries
    )


class SummaryStore:
    """Keeps the most recent run summaries in a JSON file"""

    def __init__(self, path=SUMMARY_FILE, max_items=MAX_HISTORY_ITEMS):
        self.path = path
        self.max_items = max_items
        self.lock = threading.Lock()
        self.runs: List[RunSummary] = self._load()

    def _load(self):
        if not self.path or not os.path.exists(self.path):
            return []
        try:
            with open(self.path, 'r', encoding='utf-8') as f:
                data = json.load(f)
            return [RunSummary.from_dict(item) for item in data.get('runs', [])]
        except (OSError, ValueError, KeyError) as e:
            logger.warning(f"Could not load processing summaries from {self.path}: {e}")
            return []

    def _save(self):
        if not self.path:
            return
        directory = os.path.dirname(self.path)
        if directory:
            os.makedirs(directory, exist_ok=True)
        tmp_path = f"{self.path}.tmp"
        with open(tmp_path, 'w', encoding='utf-8') as f:
            json.dump({'runs': [run.to_dict() for run in self.runs]}, f, indent=2)
        os.replace(tmp_path, self.path)

    def add_run(self, summary: RunSummary):
        """Add a run and persist, keeping only the last max_items runs"""
        with self.lock:
            self.runs.append(summary)
            if len(self.runs) > self.max_items:
                del self.runs[:len(self.runs) - self.max_items]
            try:
                self._save()
            except OSError as e:
                logger.error(f"Could not save processing summaries to {self.path}: {e}")
        logger.info(f"Recorded run {summary.id}: {summary.successful_files}/{summary.total_files} succeeded")

    def get_all(self):
        """All runs, newest first"""
        with self.lock:
            return [run.to_dict() for run in reversed(self.runs)]

    def get_run(self, run_id) -> Optional[RunSummary]:
        with self.lock:
            for run in self.runs:
                if run.id == run_id:
                    return run
            return None

    def latest(self) -> Optional[RunSummary]:
        with self.lock:
            return self.runs[-1] if self.runs else None

    def clear(self):
        """Clear all summaries"""
        with self.lock:
            self.runs.clear()
            try:
                self._save()
            except OSError as e:
                logger.error(f"Could not save processing summaries to {self.path}: {e}")
        logger.info("Cleared processing summaries")


def utcnow():
    return datetime.now(timezone.utc)
