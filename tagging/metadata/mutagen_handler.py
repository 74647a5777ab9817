"""
Mutagen access for Batch Retagger
Opens in-memory uploads and reads their tags, pictures and stream info

This module uses Mutagen (https://github.com/quodlibet/mutagen)
Licensed under LGPL-2.1+ for audio metadata operations.
"""

import base64
import re
from io import BytesIO
from typing import Any, Dict, Optional, Tuple

from mutagen import File, MutagenError
from mutagen.flac import FLAC, Picture
from mutagen.mp3 import MP3
from mutagen.mp4 import MP4, MP4Cover
from mutagen.oggopus import OggOpus
from mutagen.oggvorbis import OggVorbis
from mutagen.wave import WAVE

from config import logger
from tagging.album_art.processor import detect_mime_type
from tagging.album_art.resolver import ResolvedCoverArt

YEAR_PATTERN = re.compile(r'\d{4}')

# Container class -> format name used throughout the package
CONTAINERS = (
    (MP3, 'mp3'),
    (WAVE, 'wav'),
    (FLAC, 'flac'),
    (OggVorbis, 'ogg'),
    (OggOpus, 'ogg'),
    (MP4, 'mp4')
)

# Which key family each format stores its tags in
TAG_FAMILY = {'mp3': 'id3', 'wav': 'id3', 'flac': 'vorbis', 'ogg': 'vorbis', 'mp4': 'mp4'}

# Field -> (ID3 frame, Vorbis comment, MP4 atom); Vorbis keys are case-insensitive
FIELD_KEYS = {
    'title': ('TIT2', 'TITLE', '\xa9nam'),
    'artist': ('TPE1', 'ARTIST', '\xa9ART'),
    'album': ('TALB', 'ALBUM', '\xa9alb'),
    'albumartist': ('TPE2', 'ALBUMARTIST', 'aART'),
    'year': ('TDRC', 'DATE', '\xa9day'),
    'genre': ('TCON', 'GENRE', '\xa9gen'),
    'track': ('TRCK', 'TRACKNUMBER', 'trkn'),
    'composer': ('TCOM', 'COMPOSER', '\xa9wrt'),
    'comment': ('COMM', 'COMMENT', '\xa9cmt')
}
FAMILY_COLUMN = {'id3': 0, 'vorbis': 1, 'mp4': 2}


def _as_text(value):
    """Flatten a Mutagen tag value to its first item as text"""
    if hasattr(value, 'text'):
        value = value.text
    if isinstance(value, list):
        value = value[0] if value else ''
    if isinstance(value, tuple):
        # MP4 (number, total) pairs
        value = value[0] or ''
    return str(value)


class MutagenHandler:
    """Reads tags from any container Mutagen understands"""

    def detect_format(self, fileobj) -> Tuple[Any, str]:
        """
        Parse a file object and name its container

        Args:
            fileobj: Seekable binary file object; its ``name`` helps Mutagen
                pick the right parser

        Returns:
            Tuple of (Mutagen File object or None, format string)

        Raises:
            MutagenError: If Mutagen fails while parsing a recognised format
        """
        audio_file = File(fileobj)
        if audio_file is None:
            return None, 'unknown'

        for container, format_type in CONTAINERS:
            if isinstance(audio_file, container):
                return audio_file, format_type
        return audio_file, 'unknown'

    def open_bytes(self, data: bytes, filename: str = '') -> Tuple[Any, str]:
        """Detect format for an in-memory file"""
        fileobj = BytesIO(data)
        fileobj.name = filename
        return self.detect_format(fileobj)

    def tag_key(self, field: str, format_type: str) -> Optional[str]:
        family = TAG_FAMILY.get(format_type)
        if family is None or field not in FIELD_KEYS:
            return None
        return FIELD_KEYS[field][FAMILY_COLUMN[family]]

    def _lookup(self, tags, key: str, family: str) -> str:
        if family == 'id3':
            # COMM:<desc>:<lang>, GEOB and friends carry qualified keys
            frames = tags.getall(key)
            return _as_text(frames[0]) if frames else ''
        if key not in tags:
            return ''
        return _as_text(tags[key])

    def read_existing_metadata(self, audio_file, format_type: str) -> Dict[str, str]:
        """
        Read the tag fields a parsed file actually has

        Returns:
            Dictionary with only non-empty fields
        """
        tags = getattr(audio_file, 'tags', None)
        family = TAG_FAMILY.get(format_type)
        if not tags or family is None:
            return {}

        metadata = {}
        for field in FIELD_KEYS:
            value = self._lookup(tags, self.tag_key(field, format_type), family).strip()
            if field == 'year' and value:
                match = YEAR_PATTERN.search(value)
                value = match.group(0) if match else ''
            if value:
                metadata[field] = value
        return metadata

    def get_album_art(self, audio_file, format_type: str) -> Optional[ResolvedCoverArt]:
        """First embedded picture as ResolvedCoverArt, or None"""
        try:
            picture = self._first_picture(audio_file, format_type)
        except (MutagenError, ValueError, KeyError) as e:
            logger.warning(f"Error extracting album art: {e}")
            return None

        if picture is None:
            return None
        data, mime, desc = picture
        return ResolvedCoverArt(bytes(data), mime or detect_mime_type(data), desc or 'Cover')

    def _first_picture(self, audio_file, format_type):
        tags = audio_file.tags

        if TAG_FAMILY.get(format_type) == 'id3':
            frames = tags.getall('APIC') if tags else []
            return (frames[0].data, frames[0].mime, frames[0].desc) if frames else None

        if format_type == 'flac':
            pictures = audio_file.pictures
            return (pictures[0].data, pictures[0].mime, pictures[0].desc) if pictures else None

        if format_type == 'ogg':
            blocks = tags.get('METADATA_BLOCK_PICTURE') if tags else None
            if not blocks:
                return None
            pic = Picture(base64.b64decode(blocks[0]))
            return pic.data, pic.mime, pic.desc

        if format_type == 'mp4':
            covers = tags.get('covr') if tags else None
            if not covers:
                return None
            cover = covers[0]
            mime = 'image/png' if cover.imageformat == MP4Cover.FORMAT_PNG else 'image/jpeg'
            return bytes(cover), mime, None

        return None

    def get_stream_info(self, audio_file, format_type: str) -> Dict[str, Any]:
        """Duration, bitrate and codec details from the stream header"""
        info = getattr(audio_file, 'info', None)
        codec = getattr(info, 'codec', None)
        if not codec and isinstance(audio_file, MP3):
            codec = f"MPEG {info.version:g} Layer {info.layer}"
        return {
            'duration': getattr(info, 'length', 0) or 0,
            'bitrate': getattr(info, 'bitrate', 0) or 0,
            'sample_rate': getattr(info, 'sample_rate', 0) or 0,
            'codec': codec or format_type.upper(),
            'container': format_type
        }


mutagen_handler = MutagenHandler()
