"""
In-memory file handle registry for Batch Retagger

Uploaded files cannot be serialized into the plain JSON that clients keep
between steps, so the live handles stay here, addressed by a stable id.
Nothing is evicted automatically; clear() is the only way to free the
memory held by file contents.
"""
import os
import threading
import time
import uuid
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from config import logger
from tagging.album_art.resolver import ResolvedCoverArt
from tagging.album_art.processor import detect_mime_type
from tagging.exceptions import FileUnavailableError
from tagging.file_utils import guess_mime_type


class LocalFileHandle:
    """Handle to a file on disk, read on demand"""

    def __init__(self, path, mime_type=None):
        self.path = path
        self.name = os.path.basename(path)
        self.mime_type = mime_type or guess_mime_type(self.name)

    @property
    def size(self):
        return os.path.getsize(self.path)

    def read(self):
        with open(self.path, 'rb') as f:
            return f.read()

    def __repr__(self):
        return f"LocalFileHandle({self.path!r})"


class MemoryFileHandle:
    """Handle to file contents held in memory"""

    def __init__(self, name, data, mime_type=None):
        self.name = name
        self.data = bytes(data)
        self.mime_type = mime_type or guess_mime_type(name)

    @classmethod
    def from_upload(cls, storage):
        """Copy a werkzeug FileStorage, whose stream closes with the request"""
        name = os.path.basename(storage.filename or 'upload')
        mime_type = storage.mimetype if storage.mimetype and storage.mimetype != 'application/octet-stream' else None
        return cls(name, storage.read(), mime_type)

    @property
    def size(self):
        return len(self.data)

    def read(self):
        return self.data

    def __repr__(self):
        return f"MemoryFileHandle({self.name!r}, {self.size} bytes)"


@dataclass
class FileRecord:
    """A registry entry; only id and snapshot may be persisted"""
    id: str
    handle: Any
    snapshot: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self):
        """Serializable view, never includes the handle or file contents"""
        return dict(self.snapshot, id=self.id)


class FileHandleRegistry:
    """Maps stable file ids to live file handles"""

    def __init__(self):
        self._records: Dict[str, FileRecord] = {}
        self._cover_art = None
        self._blobs: Dict[str, ResolvedCoverArt] = {}
        self._disposed = False
        self.lock = threading.Lock()
        self.created = time.time()
        logger.info("File registry created")

    def _check_open(self):
        if self._disposed:
            raise RuntimeError("File registry has been disposed")

    def store(self, file_id, handle, metadata=None):
        """Store a handle, replacing any existing entry with the same id"""
        snapshot = {
            'name': handle.name,
            'size': handle.size,
            'mimeType': handle.mime_type
        }
        snapshot.update(metadata or {})
        snapshot['storedAt'] = time.time()

        with self.lock:
            self._check_open()
            self._records[file_id] = FileRecord(file_id, handle, snapshot)

        logger.info(f"Stored file: {file_id} ({handle.name})")
        return file_id

    def store_many(self, entries):
        """
        Store several handles at once

        Args:
            entries: Iterable of (file_id, handle, metadata) tuples

        Returns:
            int: Number of handles stored
        """
        count = 0
        for file_id, handle, metadata in entries:
            self.store(file_id, handle, metadata)
            count += 1
        logger.info(f"Stored {count} files")
        return count

    def get(self, file_id):
        """Return the handle for an id, or None if it is no longer held"""
        with self.lock:
            record = self._records.get(file_id)
        if record is None:
            logger.warning(f"File not found in registry: {file_id}")
            return None
        return record.handle

    def get_metadata(self, file_id):
        with self.lock:
            record = self._records.get(file_id)
        return dict(record.snapshot) if record else None

    def require(self, file_id):
        """Like get(), but raises FileUnavailableError for a missing id"""
        handle = self.get(file_id)
        if handle is None:
            raise FileUnavailableError(file_id)
        return handle

    def has(self, file_id):
        with self.lock:
            return file_id in self._records

    def get_all(self) -> List[FileRecord]:
        """All entries in insertion order"""
        with self.lock:
            return list(self._records.values())

    def ids(self):
        with self.lock:
            return list(self._records.keys())

    def resolve(self, file_ids) -> Tuple[List[Tuple[str, Any]], List[str]]:
        """
        Look up several ids at once

        Returns:
            tuple: ([(file_id, handle), ...] in request order, [missing ids])
        """
        found = []
        missing = []
        with self.lock:
            for file_id in file_ids:
                record = self._records.get(file_id)
                if record is None:
                    missing.append(file_id)
                else:
                    found.append((file_id, record.handle))
        return found, missing

    def remove(self, file_id):
        """Remove one entry; returns True if it existed"""
        with self.lock:
            removed = self._records.pop(file_id, None) is not None
        if removed:
            logger.info(f"Removed file: {file_id}")
        return removed

    def store_cover_art(self, ref):
        """Remember the cover art reference chosen for the current batch"""
        with self.lock:
            self._check_open()
            self._cover_art = ref

    def get_cover_art(self):
        with self.lock:
            return self._cover_art

    def store_blob(self, data, mime_type=None, description='Cover'):
        """Keep image bytes in memory and return a blob: URL that refers to them"""
        url = f"blob:{uuid.uuid4()}"
        blob = ResolvedCoverArt(bytes(data), mime_type or detect_mime_type(data), description)
        with self.lock:
            self._check_open()
            self._blobs[url] = blob
        return url

    def get_blob(self, url):
        """Resolve a blob: URL issued by store_blob, None if unknown"""
        with self.lock:
            return self._blobs.get(url)

    def clear(self):
        """Drop every handle, the batch cover art and all blobs"""
        with self.lock:
            count = len(self._records)
            self._records.clear()
            self._blobs.clear()
            self._cover_art = None
        logger.info(f"Cleared {count} files from registry")
        return count

    def dispose(self):
        """Clear the registry and refuse further writes"""
        self.clear()
        with self.lock:
            self._disposed = True
        logger.info("File registry disposed")

    def stats(self):
        with self.lock:
            return {
                'fileCount': len(self._records),
                'totalBytes': sum(r.snapshot.get('size', 0) for r in self._records.values()),
                'hasCoverArt': self._cover_art is not None,
                'blobCount': len(self._blobs),
                'created': self.created
            }

    def __len__(self):
        with self.lock:
            return len(self._records)

    def __contains__(self, file_id):
        return self.has(file_id)
