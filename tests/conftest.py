"""
Shared fixtures for Batch Retagger tests
"""

import base64

import pytest

from tagging.registry import FileHandleRegistry, MemoryFileHandle
from tagging.summary import SummaryStore

from tests.audio_samples import build_audio, build_image, build_oversized_png


@pytest.fixture
def audio_payload():
    """Tag-free MP3 audio frames"""
    return build_audio()


@pytest.fixture
def png_bytes():
    return build_image('PNG')


@pytest.fixture
def jpeg_bytes():
    return build_image('JPEG')


@pytest.fixture
def oversized_png():
    return build_oversized_png()


@pytest.fixture
def png_data_uri(png_bytes):
    return 'data:image/png;base64,' + base64.b64encode(png_bytes).decode('ascii')


@pytest.fixture
def make_mp3(audio_payload):
    """Factory for MP3 file contents, optionally carrying an existing tag"""
    from tagging.metadata.writer import write_tags

    def _make(fields=None, cover=None):
        if fields is None and cover is None:
            return audio_payload
        return write_tags(audio_payload, fields or {}, cover)

    return _make


@pytest.fixture
def make_handle(make_mp3):
    """Factory for in-memory file handles"""

    def _make(name, data=None, fields=None):
        if data is None:
            data = make_mp3(fields)
        return MemoryFileHandle(name, data)

    return _make


@pytest.fixture
def registry():
    reg = FileHandleRegistry()
    yield reg
    reg.dispose()


@pytest.fixture
def summary_store(tmp_path):
    return SummaryStore(path=str(tmp_path / 'summaries.json'))
