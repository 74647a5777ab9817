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
Metadata reading operations for Batch Retagger
Handles extracting tags, cover art and stream info from file handles using Mutagen
"""
from mutagen import MutagenError

from config import logger
from tagging.exceptions import MetadataReadError
from tagging.metadata.mutagen_handler import mutagen_handler


def read_metadata_bytes(data, filename=''):
    """
    Read metadata from the raw contents of an audio file

    Args:
        data: Complete file contents
        filename: Original file name, used to help format detection

    Returns:
        dict: Present tag fields plus 'cover_art', 'duration', 'bitrate',
        'sample_rate', 'codec' and 'container'

    Raises:
        MetadataReadError: If the file cannot be parsed
    """
    try:
        audio_file, format_type = mutagen_handler.open_bytes(data, filename)
    except (MutagenError, ValueError, EOFError) as e:
        logger.error(f"Error reading metadata from {filename}: {e}")
        raise MetadataReadError(f"Failed to read metadata from {filename}", filename, str(e)) from e

    if audio_file is None:
        raise MetadataReadError(f"Unrecognised audio format: {filename}", filename)

    metadata = mutagen_handler.read_existing_metadata(audio_file, format_type)
    metadata['cover_art'] = mutagen_handler.get_album_art(audio_file, format_type)
    metadata.update(mutagen_handler.get_stream_info(audio_file, format_type))
    return metadata


def read_metadata(handle):
    """
    Read metadata from a file handle

    Args:
        handle: Any object with ``name`` and ``read()``

    Raises:
        MetadataReadError: If the file cannot be read or parsed
    """
    try:
        data = handle.read()
    except OSError as e:
        raise MetadataReadError(f"Could not read {handle.name}", handle.name, str(e)) from e
    return read_metadata_bytes(data, handle.name)
