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
File name utilities for Batch Retagger
Handles extension lookup, format support and safe output names
"""
import os
import re

from config import FORMAT_SUPPORT, MIME_TYPES

INVALID_FILENAME_CHARS = re.compile(r'[<>:"/\\|?*]')


def get_file_extension(filename):
    """Return the lowercase extension without the dot, or '' if there is none"""
    ext = os.path.splitext(filename or '')[1]
    return ext[1:].lower()


def check_format_support(filename):
    """
    Look up read/write capability for a file by its extension

    Returns:
        dict: {'read': bool, 'write': bool, 'name': str}
    """
    ext = get_file_extension(filename)
    support = FORMAT_SUPPORT.get(ext)
    if support:
        return dict(support)
    return {'read': False, 'write': False, 'name': ext.upper() or 'UNKNOWN'}


def guess_mime_type(filename, default='application/octet-stream'):
    """MIME type for an audio file name"""
    ext = os.path.splitext((filename or '').lower())[1]
    return MIME_TYPES.get(ext, default)


def sanitize_filename(filename):
    """Replace characters that are not allowed in file names"""
    safe = INVALID_FILENAME_CHARS.sub('_', filename)
    # Control characters never make it into a download name
    safe = ''.join(ch for ch in safe if ord(ch) >= 32)
    return safe.strip()
