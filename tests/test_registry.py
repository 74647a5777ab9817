"""
Tests for the file handle registry.

Tests verify:
- Storing and looking up handles by id
- Serializable snapshots never include file contents
- Registry misses surface as "file unavailable"
- Clearing and disposal
"""

from io import BytesIO

import pytest
from werkzeug.datastructures import FileStorage

from tagging.exceptions import FileUnavailableError
from tagging.registry import FileHandleRegistry, LocalFileHandle, MemoryFileHandle


class TestFileHandles:
    """Test handle implementations."""

    def test_memory_handle(self):
        handle = MemoryFileHandle('song.mp3', bytearray(b'abc'))
        assert handle.read() == b'abc'
        assert handle.size == 3
        assert handle.mime_type == 'audio/mpeg'

    def test_from_upload(self):
        storage = FileStorage(stream=BytesIO(b'data'), filename='dir/song.mp3', content_type='audio/mpeg')
        handle = MemoryFileHandle.from_upload(storage)
        assert handle.name == 'song.mp3'
        assert handle.read() == b'data'
        assert handle.mime_type == 'audio/mpeg'

    def test_from_upload_octet_stream(self):
        storage = FileStorage(stream=BytesIO(b'data'), filename='song.flac', content_type='application/octet-stream')
        assert MemoryFileHandle.from_upload(storage).mime_type == 'audio/flac'

    def test_local_handle(self, tmp_path):
        path = tmp_path / 'local.mp3'
        path.write_bytes(b'12345')
        handle = LocalFileHandle(str(path))
        assert handle.name == 'local.mp3'
        assert handle.size == 5
        assert handle.read() == b'12345'


class TestFileHandleRegistry:
    """Test registry operations."""

    def test_store_and_get(self, registry):
        handle = MemoryFileHandle('a.mp3', b'123')
        assert registry.store('id-1', handle) == 'id-1'

        assert registry.get('id-1') is handle
        assert registry.has('id-1')
        assert 'id-1' in registry
        assert len(registry) == 1

    def test_store_replaces(self, registry):
        registry.store('id-1', MemoryFileHandle('a.mp3', b'1'))
        newer = MemoryFileHandle('b.mp3', b'2')
        registry.store('id-1', newer)
        assert registry.get('id-1') is newer
        assert len(registry) == 1

    def test_snapshot_is_serializable(self, registry):
        registry.store('id-1', MemoryFileHandle('a.mp3', b'123'), {'format': {'read': True}})
        snapshot = registry.get_all()[0].to_dict()

        assert snapshot['id'] == 'id-1'
        assert snapshot['name'] == 'a.mp3'
        assert snapshot['size'] == 3
        assert snapshot['mimeType'] == 'audio/mpeg'
        assert snapshot['format'] == {'read': True}
        assert 'storedAt' in snapshot
        assert not any(isinstance(v, (bytes, MemoryFileHandle)) for v in snapshot.values())

    def test_get_missing(self, registry):
        assert registry.get('nope') is None
        assert registry.get_metadata('nope') is None

    def test_require_missing(self, registry):
        with pytest.raises(FileUnavailableError) as exc_info:
            registry.require('nope')
        assert exc_info.value.file_id == 'nope'
        assert 'select it again' in str(exc_info.value)

    def test_store_many_keeps_order(self, registry):
        entries = [(f'id-{i}', MemoryFileHandle(f'{i}.mp3', b'x'), None) for i in range(3)]
        assert registry.store_many(entries) == 3
        assert registry.ids() == ['id-0', 'id-1', 'id-2']

    def test_resolve(self, registry):
        a = MemoryFileHandle('a.mp3', b'1')
        b = MemoryFileHandle('b.mp3', b'2')
        registry.store('a', a)
        registry.store('b', b)

        found, missing = registry.resolve(['b', 'x', 'a'])

        assert found == [('b', b), ('a', a)]
        assert missing == ['x']

    def test_remove(self, registry):
        registry.store('a', MemoryFileHandle('a.mp3', b'1'))
        assert registry.remove('a') is True
        assert registry.remove('a') is False
        assert registry.get('a') is None

    def test_cover_art_and_blobs(self, registry, png_bytes):
        url = registry.store_blob(png_bytes)
        assert url.startswith('blob:')
        assert registry.get_blob(url).mime_type == 'image/png'
        assert registry.get_blob('blob:unknown') is None

        registry.store_cover_art('https://example.com/a.png')
        assert registry.get_cover_art() == 'https://example.com/a.png'

    def test_clear(self, registry, png_bytes):
        registry.store('a', MemoryFileHandle('a.mp3', b'1'))
        url = registry.store_blob(png_bytes)
        registry.store_cover_art(url)

        assert registry.clear() == 1
        assert len(registry) == 0
        assert registry.get_blob(url) is None
        assert registry.get_cover_art() is None

        # Still usable after clear
        registry.store('b', MemoryFileHandle('b.mp3', b'2'))
        assert registry.has('b')

    def test_dispose(self):
        registry = FileHandleRegistry()
        registry.store('a', MemoryFileHandle('a.mp3', b'1'))
        registry.dispose()

        assert len(registry) == 0
        with pytest.raises(RuntimeError):
            registry.store('b', MemoryFileHandle('b.mp3', b'2'))

    def test_instances_are_independent(self):
        first = FileHandleRegistry()
        second = FileHandleRegistry()
        first.store('a', MemoryFileHandle('a.mp3', b'1'))
        assert not second.has('a')

    def test_stats(self, registry):
        registry.store('a', MemoryFileHandle('a.mp3', b'123'))
        registry.store('b', MemoryFileHandle('b.mp3', b'45'))
        stats = registry.stats()
        assert stats['fileCount'] == 2
        assert stats['totalBytes'] == 5
        assert stats['hasCoverArt'] is False
