"""
Tag field maps for Batch Retagger
"""
from config import TAG_FIELDS

# Alternate spellings accepted from API clients
FIELD_ALIASES = {
    'albumArtist': 'albumartist',
    'album_artist': 'albumartist',
    'album-artist': 'albumartist',
    'tracknumber': 'track',
    'track_number': 'track',
    'track-number': 'track',
    'comments': 'comment',
    'date': 'year'
}


def normalize_fields(fields):
    """
    Return a clean field map

    Unknown keys are dropped, aliases are mapped to canonical names and
    empty values (None or blank strings) are left out so that an unset
    field is always absent.
    """
    normalized = {}
    if not fields:
        return normalized

    for key, value in fields.items():
        name = FIELD_ALIASES.get(key, key)
        if name not in TAG_FIELDS or value is None:
            continue
        if isinstance(value, str):
            value = value.strip()
            if not value:
                continue
        elif isinstance(value, bool) or not isinstance(value, int):
            value = str(value).strip()
            if not value:
                continue
        normalized[name] = value
    return normalized


def merge_fields(*layers):
    """Merge field maps left to right, later layers win on collisions"""
    merged = {}
    for layer in layers:
        merged.update(normalize_fields(layer))
    return merged
