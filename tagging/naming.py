"""
Output file naming for Batch Retagger
"""
import os
import re

from config import FILENAME_TEMPLATES
from tagging.file_utils import sanitize_filename

UNTITLED = 'Untitled'
UNKNOWN_ARTIST = 'Unknown'

YEAR_TOKEN = re.compile(r'\b(?:19|20)\d{2}\b')


def _segment(fields, key, fallback):
    value = fields.get(key)
    if value is None:
        return fallback
    value = sanitize_filename(str(value))
    return value or fallback


def generate_filename(fields, original_name, template='title-artist'):
    """
    Build an output file name from tag fields

    Args:
        fields: Tag field map
        original_name: Name of the source file, the extension is kept from it
        template: One of 'title-artist', 'artist-title', 'title', 'original'

    Returns:
        str: The new file name
    """
    if template not in FILENAME_TEMPLATES or template == 'original':
        return original_name

    ext = os.path.splitext(original_name)[1]
    title = _segment(fields, 'title', UNTITLED)
    artist = _segment(fields, 'artist', UNKNOWN_ARTIST)

    if template == 'title-artist':
        base = f"{title} - {artist}"
    elif template == 'artist-title':
        base = f"{artist} - {title}"
    else:
        base = title

    return f"{base}{ext}"


def infer_fields_from_filename(filename):
    """
    Guess title, artist and year from common file naming patterns

    Recognises "Artist - Title", "Artist_Title" and "Title by Artist".
    """
    stem = os.path.splitext(os.path.basename(filename or ''))[0].strip()
    fields = {'title': stem or UNTITLED}

    if ' - ' in stem:
        artist, title = stem.split(' - ', 1)
        if artist.strip() and title.strip():
            fields['artist'] = artist.strip()
            fields['title'] = title.strip()
    elif '_' in stem:
        artist, title = stem.split('_', 1)
        if artist.strip() and title.strip():
            fields['artist'] = artist.strip()
            fields['title'] = title.strip()
    else:
        match = re.match(r'^(.+?)\s+by\s+(.+)$', stem, re.IGNORECASE)
        if match:
            fields['title'] = match.group(1).strip()
            fields['artist'] = match.group(2).strip()

    year = YEAR_TOKEN.search(stem)
    if year:
        fields['year'] = year.group(0)

    return fields
