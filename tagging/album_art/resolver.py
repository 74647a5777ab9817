# Batch Retagger - Batch ID3 tag rewriting service
# Copyright (C) 2025 Dr. William Nelson Leonard
#
# This program is free software: you can redistribute it and/or modify
# it under the terms of the GNU Affero General Public License as published by
# the Free Software Foundation, either version 3 of the License, or
# (at your option) any later version.
#
# This program is distributed in the hope that it will be useful,
# but WITHOUT ANY WARRANTY; without even the implied warranty of
# MERCHANTABILITY or FITNESS FOR A PARTICULAR PURPOSE.  See the
# GNU Affero General Public License for more details.
#
# You should have received a copy of the GNU Affero General Public License
# along with this program.  If not, see <https://www.gnu.org/licenses/>.

"""
Cover art resolution for Batch Retagger
Turns the different ways cover art can be supplied into image bytes plus a MIME type
"""
import base64
import http.client
import urllib.parse
import urllib.request
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional, Union

from PIL import Image

from config import COVER_ART_FETCH_TIMEOUT, MAX_COVER_ART_BYTES, USER_AGENT, logger
from tagging.album_art.processor import image_mime_type, is_corrupted_image

DEFAULT_DESCRIPTION = 'Cover'


@dataclass(frozen=True)
class ResolvedCoverArt:
    """Image bytes ready to be embedded as a picture frame"""
    data: bytes
    mime_type: str
    description: str = DEFAULT_DESCRIPTION


@dataclass(frozen=True)
class CoverArtBytes:
    """Raw image bytes, optionally with a known MIME type"""
    data: bytes
    mime_type: Optional[str] = None
    description: str = DEFAULT_DESCRIPTION


@dataclass(frozen=True)
class DataUriCoverArt:
    """A data: URI such as data:image/png;base64,...."""
    uri: str


@dataclass(frozen=True)
class UrlCoverArt:
    """An http(s) URL, or a blob: URL issued by the file registry"""
    url: str


@dataclass(frozen=True)
class FileCoverArt:
    """A file handle whose contents are an image"""
    handle: Any


CoverArtRef = Union[CoverArtBytes, DataUriCoverArt, UrlCoverArt, FileCoverArt]

BlobLookup = Callable[[str], Optional[ResolvedCoverArt]]


def cover_art_ref_from_value(value, mime_type=None):
    """
    Build a CoverArtRef from a loosely typed API value

    Args:
        value: data URI string, http(s)/blob URL string, or raw bytes
        mime_type: MIME type for raw bytes (optional)

    Returns:
        CoverArtRef or None if the value has no usable shape
    """
    if isinstance(value, (CoverArtBytes, DataUriCoverArt, UrlCoverArt, FileCoverArt)):
        return value
    if isinstance(value, (bytes, bytearray)):
        return CoverArtBytes(bytes(value), mime_type)
    if isinstance(value, str):
        if value.startswith('data:'):
            return DataUriCoverArt(value)
        if value.startswith(('http://', 'https://', 'blob:')):
            return UrlCoverArt(value)
    return None


def _finish(data, mime_type, description=DEFAULT_DESCRIPTION):
    if not data:
        return None
    if is_corrupted_image(data):
        logger.warning("Cover art is not a valid image, ignoring it")
        return None
    return ResolvedCoverArt(bytes(data), mime_type or image_mime_type(data), description or DEFAULT_DESCRIPTION)


def _resolve_bytes(ref, blob_lookup, timeout):
    return _finish(ref.data, ref.mime_type, ref.description)


def _resolve_file(ref, blob_lookup, timeout):
    handle = ref.handle
    data = handle.read()
    mime_type = getattr(handle, 'mime_type', None)
    if mime_type and not mime_type.startswith('image/'):
        mime_type = None
    return _finish(data, mime_type, getattr(handle, 'name', None))


def _resolve_data_uri(ref, blob_lookup, timeout):
    header, sep, payload = ref.uri.partition(',')
    if not sep:
        logger.warning("Cover art data URI has no payload")
        return None

    # data:[<mediatype>][;base64]
    params = header[len('data:'):].split(';')
    mime_type = params[0] or None
    if 'base64' in params[1:]:
        data = base64.b64decode(payload, validate=False)
    else:
        data = urllib.parse.unquote_to_bytes(payload)
    return _finish(data, mime_type)


def _resolve_url(ref, blob_lookup, timeout):
    url = ref.url
    if url.startswith('blob:'):
        if blob_lookup is None:
            logger.warning(f"No blob store available to resolve {url}")
            return None
        return blob_lookup(url)

    req = urllib.request.Request(url, headers={'User-Agent': USER_AGENT})
    with urllib.request.urlopen(req, timeout=timeout) as response:
        data = response.read(MAX_COVER_ART_BYTES + 1)
        content_type = response.headers.get_content_type() if response.headers else None

    if len(data) > MAX_COVER_ART_BYTES:
        logger.warning(f"Cover art at {url} exceeds {MAX_COVER_ART_BYTES} bytes")
        return None
    if content_type and not content_type.startswith('image/'):
        content_type = None
    return _finish(data, content_type)


_RESOLVERS = {
    CoverArtBytes: _resolve_bytes,
    FileCoverArt: _resolve_file,
    DataUriCoverArt: _resolve_data_uri,
    UrlCoverArt: _resolve_url
}


def resolve_cover_art(ref, blob_lookup=None, timeout=COVER_ART_FETCH_TIMEOUT):
    """
    Resolve a cover art reference into image bytes and a MIME type

    Returns None for unknown reference shapes and for any I/O or decoding
    failure. Callers treat None as "no cover art".
    """
    if ref is None:
        return None
    if isinstance(ref, ResolvedCoverArt):
        return ref

    resolver = _RESOLVERS.get(type(ref))
    if resolver is None:
        logger.warning(f"Unsupported cover art reference: {type(ref).__name__}")
        return None

    try:
        return resolver(ref, blob_lookup, timeout)
    except (OSError, ValueError, http.client.HTTPException, Image.DecompressionBombError) as e:
        logger.warning(f"Could not resolve cover art: {e}")
        return None


class CoverArtCache:
    """Resolves each distinct cover art reference at most once per batch run"""

    def __init__(self, blob_lookup: Optional[BlobLookup] = None):
        self.blob_lookup = blob_lookup
        self._resolved: Dict[Any, Optional[ResolvedCoverArt]] = {}

    def resolve(self, ref):
        if ref is None:
            return None
        if ref not in self._resolved:
            self._resolved[ref] = resolve_cover_art(ref, self.blob_lookup)
        return self._resolved[ref]

    def __len__(self):
        return len(self._resolved)
