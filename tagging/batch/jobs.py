"""
Background batch runs for Batch Retagger

A job runs process_batch on its own thread so clients can poll progress and
request cancellation. Files are still processed strictly one at a time.
"""
import threading
import uuid
from typing import Dict, List, Optional

from config import logger
from tagging.batch.processor import CancellationToken, process_batch, summarize_results
from tagging.summary import create_run_summary, utcnow


class BatchJob:
    """One batch run and everything it produced"""

    def __init__(self, handles, override_fields, options, summary_store=None):
        self.id = str(uuid.uuid4())
        self.handles = list(handles)
        self.override_fields = override_fields
        self.options = options
        self.summary_store = summary_store
        self.cancel_token = CancellationToken()
        self.status = 'pending'
        self.progress = None
        self.events: List[dict] = []
        self.results = []
        self.error = None
        self.started_at = None
        self.finished_at = None
        self.lock = threading.Lock()
        self._done = threading.Event()
        self._thread = None

    def _on_progress(self, event):
        with self.lock:
            self.progress = event.to_dict()
            self.events.append(self.progress)

    def run(self):
        """Run the batch on the calling thread"""
        with self.lock:
            self.status = 'processing'
            self.started_at = utcnow()
        try:
            try:
                results = process_batch(
                    self.handles,
                    self.override_fields,
                    self.options,
                    on_progress=self._on_progress,
                    cancel_token=self.cancel_token
                )
            except Exception as e:
                logger.error(f"Batch job {self.id} failed: {e}")
                with self.lock:
                    self.status = 'error'
                    self.error = str(e)
                    self.finished_at = utcnow()
                raise

            with self.lock:
                self.results = results
                self.finished_at = utcnow()
                self.status = 'cancelled' if self.cancel_token.cancelled else 'completed'

            if self.summary_store is not None:
                try:
                    self.summary_store.add_run(create_run_summary(results, self.started_at, self.finished_at, self.id))
                except Exception as e:
                    # The files are done; only the history entry is lost
                    logger.error(f"Could not record summary for batch job {self.id}: {e}")
        finally:
            self._done.set()

    def _run_in_thread(self):
        try:
            self.run()
        except Exception:
            # Already recorded on the job
            pass

    def start(self):
        """Start the batch on a background thread"""
        self._thread = threading.Thread(target=self._run_in_thread, name=f"batch-{self.id[:8]}", daemon=True)
        self._thread.start()
        return self

    def cancel(self):
        """Stop starting new files; a file already being written still finishes"""
        self.cancel_token.cancel()
        logger.info(f"Cancellation requested for batch job {self.id}")

    def wait(self, timeout=None):
        return self._done.wait(timeout)

    @property
    def finished(self):
        return self._done.is_set()

    def get_result(self, file_id):
        with self.lock:
            for result in self.results:
                if result.file_id == file_id:
                    return result
        return None

    def to_dict(self):
        """Progress and summaries, never file contents"""
        with self.lock:
            data = {
                'id': self.id,
                'status': self.status,
                'total': len(self.handles),
                'progress': self.progress,
                'error': self.error,
                'startTime': self.started_at.isoformat() if self.started_at else None,
                'endTime': self.finished_at.isoformat() if self.finished_at else None,
                'results': []
            }
            if self.results:
                data['results'] = [dict(r.to_summary(), id=r.file_id) for r in self.results]
                data.update(summarize_results(self.results))
            return data


class JobManager:
    """Keeps batch jobs addressable by id until the batch is cleared"""

    def __init__(self, summary_store=None):
        self.summary_store = summary_store
        self.jobs: Dict[str, BatchJob] = {}
        self.lock = threading.Lock()

    def submit(self, handles, override_fields, options, background=True):
        job = BatchJob(handles, override_fields, options, self.summary_store)
        with self.lock:
            self.jobs[job.id] = job
        logger.info(f"Submitted batch job {job.id} with {len(job.handles)} files")
        if background:
            job.start()
        else:
            job.run()
        return job

    def get(self, job_id) -> Optional[BatchJob]:
        with self.lock:
            return self.jobs.get(job_id)

    def clear(self):
        """Cancel running jobs and drop every job with its outputs"""
        with self.lock:
            jobs = list(self.jobs.values())
            self.jobs.clear()
        for job in jobs:
            if not job.finished:
                job.cancel()
        return len(jobs)
