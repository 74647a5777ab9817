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
Metadata writing operations for Batch Retagger
Builds a brand new ID3v2 tag with Mutagen and prepends it to a tag-free MP3 payload
"""
import re
from io import BytesIO

from mutagen import MutagenError
from mutagen.id3 import (
    APIC, COMM, ID3, TALB, TCOM, TCON, TDRC, TIT2, TPE1, TPE2, TRCK,
    ID3v1SaveOptions, PictureType
)

from config import ID3_VERSION, TAG_PADDING, logger
from tagging.exceptions import TagWriteError

UTF16 = 1  # ID3v2.3 has no UTF-8 text encoding
UTF8 = 3

# Plain text frames, in write order
TEXT_FRAMES = (
    ('title', TIT2),
    ('artist', TPE1),
    ('album', TALB),
    ('genre', TCON),
    ('track', TRCK),
    ('albumartist', TPE2),
    ('composer', TCOM)
)

LEADING_DIGITS = re.compile(r'^\s*(\d+)')


def _text_encoding():
    return UTF8 if ID3_VERSION == 4 else UTF16


def _parse_year(value):
    """Integer year from an int or a string starting with digits"""
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    match = LEADING_DIGITS.match(str(value))
    if not match:
        raise TagWriteError(f"Invalid year: {value!r}", 'TDRC')
    return int(match.group(1))


def build_id3_tag(fields, cover=None):
    """
    Build an ID3 tag object holding one frame per present field

    Args:
        fields: Tag field map (title, artist, album, year, genre, comment,
            track, albumartist, composer)
        cover: ResolvedCoverArt to embed as the front cover (optional)

    Returns:
        mutagen.id3.ID3
    """
    encoding = _text_encoding()
    tags = ID3()

    for field, frame_class in TEXT_FRAMES:
        value = fields.get(field)
        if value is None or value == '':
            continue
        tags.add(frame_class(encoding=encoding, text=[str(value)]))

    if fields.get('year') not in (None, ''):
        year = _parse_year(fields['year'])
        tags.add(TDRC(encoding=encoding, text=[str(year)]))

    if fields.get('comment') not in (None, ''):
        tags.add(COMM(encoding=encoding, lang='eng', desc='', text=[str(fields['comment'])]))

    if cover is not None:
        tags.add(
            APIC(
                encoding=encoding,
                mime=cover.mime_type,
                type=PictureType.COVER_FRONT,
                desc=cover.description or 'Cover',
                data=cover.data
            )
        )

    return tags


def render_tag(tags):
    """Serialize an ID3 tag, padding included, to bytes"""
    if ID3_VERSION == 3:
        tags.update_to_v23()

    out = BytesIO()
    tags.save(out, v1=ID3v1SaveOptions.REMOVE, v2_version=ID3_VERSION, padding=lambda info: TAG_PADDING)
    return out.getvalue()


def write_tags(payload, fields, cover=None):
    """
    Produce a complete MP3 file from a tag-free payload and a field map

    The tag is always built from scratch. Either the whole output is
    returned or TagWriteError is raised; no partial file is produced.

    Args:
        payload: Audio bytes with no leading ID3v2 tag
        fields: Tag field map, not modified
        cover: ResolvedCoverArt (optional)

    Returns:
        bytes: New tag block followed by the unchanged payload

    Raises:
        TagWriteError: On any frame encoding or buffer assembly error
    """
    if payload is None:
        raise TagWriteError("No audio payload to write")

    try:
        tags = build_id3_tag(fields, cover)
        tag_data = render_tag(tags)
        output = tag_data + bytes(payload)
    except TagWriteError:
        raise
    except (MutagenError, ValueError, TypeError, UnicodeError, OverflowError) as e:
        logger.error(f"Failed to build ID3 tag: {e}")
        raise TagWriteError("Failed to write metadata", details=str(e)) from e

    logger.debug(f"Wrote {len(tags)} frames ({len(tag_data)} byte tag) ahead of {len(payload)} bytes of audio")
    return output
