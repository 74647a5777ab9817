"""
Tests for cover art resolution.

Tests verify:
- Dispatch on the shape of a cover art reference
- Data URI decoding
- HTTP fetching with size and failure handling
- blob: URLs resolved through the registry
- Per-run memoization
"""

import http.client
import urllib.error
from unittest.mock import MagicMock, patch

from PIL import Image

from tagging.album_art.resolver import (
    CoverArtBytes,
    CoverArtCache,
    DataUriCoverArt,
    FileCoverArt,
    ResolvedCoverArt,
    UrlCoverArt,
    cover_art_ref_from_value,
    resolve_cover_art,
)
from tagging.registry import MemoryFileHandle

URLOPEN = 'tagging.album_art.resolver.urllib.request.urlopen'


def mock_response(data, content_type='image/png'):
    response = MagicMock()
    response.read.return_value = data
    response.headers.get_content_type.return_value = content_type
    response.__enter__.return_value = response
    response.__exit__.return_value = False
    return response


class TestCoverArtRefFromValue:
    """Test building references from API values."""

    def test_data_uri(self, png_data_uri):
        assert cover_art_ref_from_value(png_data_uri) == DataUriCoverArt(png_data_uri)

    def test_urls(self):
        assert cover_art_ref_from_value('https://example.com/a.png') == UrlCoverArt('https://example.com/a.png')
        assert cover_art_ref_from_value('blob:1234') == UrlCoverArt('blob:1234')

    def test_bytes(self, png_bytes):
        ref = cover_art_ref_from_value(png_bytes, 'image/png')
        assert ref == CoverArtBytes(png_bytes, 'image/png')

    def test_unusable_values(self):
        assert cover_art_ref_from_value('just a string') is None
        assert cover_art_ref_from_value(42) is None
        assert cover_art_ref_from_value({'url': 'x'}) is None


class TestResolveCoverArt:
    """Test resolve_cover_art dispatch."""

    def test_none(self):
        assert resolve_cover_art(None) is None

    def test_already_resolved_passes_through(self, png_bytes):
        resolved = ResolvedCoverArt(png_bytes, 'image/png')
        assert resolve_cover_art(resolved) is resolved

    def test_raw_bytes(self, png_bytes):
        resolved = resolve_cover_art(CoverArtBytes(png_bytes))
        assert resolved.data == png_bytes
        assert resolved.mime_type == 'image/png'
        assert resolved.description == 'Cover'

    def test_jpeg_mime_detected(self, jpeg_bytes):
        assert resolve_cover_art(CoverArtBytes(jpeg_bytes)).mime_type == 'image/jpeg'

    def test_corrupted_bytes(self):
        assert resolve_cover_art(CoverArtBytes(b'not an image')) is None

    def test_empty_bytes(self):
        assert resolve_cover_art(CoverArtBytes(b'')) is None

    def test_decompression_bomb(self, oversized_png):
        """Pillow refuses 400M pixels; that is no cover, not an error."""
        assert resolve_cover_art(CoverArtBytes(oversized_png)) is None

    def test_file_handle(self, png_bytes):
        """A non-image MIME type on the handle falls back to sniffing."""
        handle = MemoryFileHandle('cover.png', png_bytes)
        resolved = resolve_cover_art(FileCoverArt(handle))
        assert resolved.data == png_bytes
        assert resolved.mime_type == 'image/png'

    def test_data_uri(self, png_bytes, png_data_uri):
        resolved = resolve_cover_art(DataUriCoverArt(png_data_uri))
        assert resolved.data == png_bytes
        assert resolved.mime_type == 'image/png'

    def test_data_uri_without_payload(self):
        assert resolve_cover_art(DataUriCoverArt('data:image/png;base64')) is None

    def test_data_uri_with_bad_base64(self):
        assert resolve_cover_art(DataUriCoverArt('data:image/png;base64,@@@@')) is None

    def test_unknown_reference_type(self):
        assert resolve_cover_art(object()) is None


class TestUrlResolution:
    """Test http(s) and blob: URLs."""

    def test_http_fetch(self, png_bytes):
        with patch(URLOPEN, return_value=mock_response(png_bytes)) as urlopen:
            resolved = resolve_cover_art(UrlCoverArt('https://example.com/cover.png'), timeout=3)

        assert resolved.data == png_bytes
        assert resolved.mime_type == 'image/png'
        request, = urlopen.call_args[0]
        assert request.full_url == 'https://example.com/cover.png'
        assert request.get_header('User-agent') == 'Batch-Retagger/1.0'
        assert urlopen.call_args[1]['timeout'] == 3

    def test_non_image_content_type_is_sniffed(self, jpeg_bytes):
        with patch(URLOPEN, return_value=mock_response(jpeg_bytes, 'application/octet-stream')):
            resolved = resolve_cover_art(UrlCoverArt('https://example.com/cover'))
        assert resolved.mime_type == 'image/jpeg'

    def test_network_error_yields_none(self):
        with patch(URLOPEN, side_effect=urllib.error.URLError('unreachable')):
            assert resolve_cover_art(UrlCoverArt('https://example.com/cover.png')) is None

    def test_timeout_yields_none(self):
        with patch(URLOPEN, side_effect=TimeoutError('timed out')):
            assert resolve_cover_art(UrlCoverArt('https://example.com/cover.png')) is None

    def test_truncated_response_yields_none(self):
        response = mock_response(b'')
        response.read.side_effect = http.client.IncompleteRead(b'abc', 100)
        with patch(URLOPEN, return_value=response):
            assert resolve_cover_art(UrlCoverArt('https://example.com/cover.png')) is None

    def test_bad_status_line_yields_none(self):
        with patch(URLOPEN, side_effect=http.client.BadStatusLine('garbage')):
            assert resolve_cover_art(UrlCoverArt('https://example.com/cover.png')) is None

    def test_decompression_bomb_from_lookup_yields_none(self):
        lookup = MagicMock(side_effect=Image.DecompressionBombError('too many pixels'))
        assert resolve_cover_art(UrlCoverArt('blob:1234'), blob_lookup=lookup) is None

    def test_oversized_response(self, png_bytes, monkeypatch):
        monkeypatch.setattr('tagging.album_art.resolver.MAX_COVER_ART_BYTES', 10)
        with patch(URLOPEN, return_value=mock_response(png_bytes)):
            assert resolve_cover_art(UrlCoverArt('https://example.com/cover.png')) is None

    def test_blob_lookup(self, png_bytes):
        resolved = ResolvedCoverArt(png_bytes, 'image/png')
        lookup = MagicMock(return_value=resolved)

        assert resolve_cover_art(UrlCoverArt('blob:abc'), blob_lookup=lookup) is resolved
        lookup.assert_called_once_with('blob:abc')

    def test_blob_without_lookup(self):
        with patch(URLOPEN) as urlopen:
            assert resolve_cover_art(UrlCoverArt('blob:abc')) is None
        urlopen.assert_not_called()

    def test_registry_blob(self, registry, png_bytes):
        url = registry.store_blob(png_bytes)
        resolved = resolve_cover_art(UrlCoverArt(url), blob_lookup=registry.get_blob)
        assert resolved.data == png_bytes
        assert resolved.mime_type == 'image/png'


class TestCoverArtCache:
    """Test per-run memoization."""

    def test_same_reference_fetched_once(self, png_bytes):
        cache = CoverArtCache()
        ref = UrlCoverArt('https://example.com/cover.png')

        with patch(URLOPEN, return_value=mock_response(png_bytes)) as urlopen:
            first = cache.resolve(ref)
            second = cache.resolve(UrlCoverArt('https://example.com/cover.png'))

        assert urlopen.call_count == 1
        assert first is second
        assert len(cache) == 1

    def test_failures_are_memoized(self):
        cache = CoverArtCache()
        ref = UrlCoverArt('https://example.com/missing.png')

        with patch(URLOPEN, side_effect=urllib.error.URLError('gone')) as urlopen:
            assert cache.resolve(ref) is None
            assert cache.resolve(ref) is None

        assert urlopen.call_count == 1

    def test_none_is_not_cached(self):
        cache = CoverArtCache()
        assert cache.resolve(None) is None
        assert len(cache) == 0

    def test_distinct_references(self, png_bytes, jpeg_bytes):
        cache = CoverArtCache()
        png = cache.resolve(CoverArtBytes(png_bytes))
        jpeg = cache.resolve(CoverArtBytes(jpeg_bytes))
        assert png.mime_type == 'image/png'
        assert jpeg.mime_type == 'image/jpeg'
        assert len(cache) == 2
