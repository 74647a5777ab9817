"""
Configuration and constants for Batch Retagger
"""
import os

# Server configuration
PORT = int(os.environ.get('PORT', '8340'))
HOST = '0.0.0.0'

# Largest accepted upload request, in megabytes
MAX_UPLOAD_MB = int(os.environ.get('MAX_UPLOAD_MB', '1024'))

# Canonical tag fields, in the order they are written
TAG_FIELDS = (
    'title', 'artist', 'album', 'year', 'genre',
    'comment', 'track', 'albumartist', 'composer'
)

# Read/write capability per file extension
FORMAT_SUPPORT = {
    'mp3': {'read': True, 'write': True, 'name': 'MP3'},
    'm4a': {'read': True, 'write': False, 'name': 'M4A'},
    'mp4': {'read': True, 'write': False, 'name': 'MP4'},
    'flac': {'read': True, 'write': False, 'name': 'FLAC'},
    'wav': {'read': True, 'write': False, 'name': 'WAV'},
    'ogg': {'read': True, 'write': False, 'name': 'OGG'}
}

# MIME type mapping for uploads and downloads
MIME_TYPES = {
    '.mp3': 'audio/mpeg',
    '.m4a': 'audio/mp4',
    '.mp4': 'video/mp4',
    '.flac': 'audio/flac',
    '.wav': 'audio/wav',
    '.ogg': 'audio/ogg'
}

# ID3v2 output
ID3_VERSION = int(os.environ.get('ID3_VERSION', '3'))
TAG_PADDING = int(os.environ.get('TAG_PADDING', '4096'))

# Output filenames
FILENAME_TEMPLATES = ('title-artist', 'artist-title', 'title', 'original')
DEFAULT_FILENAME_TEMPLATE = os.environ.get('FILENAME_TEMPLATE', 'title-artist')

# Cover art
COVER_ART_FETCH_TIMEOUT = float(os.environ.get('COVER_ART_FETCH_TIMEOUT', '10'))
MAX_COVER_ART_BYTES = int(os.environ.get('MAX_COVER_ART_BYTES', str(20 * 1024 * 1024)))
MAX_COVER_DIMENSION = 10000
USER_AGENT = 'Batch-Retagger/1.0'

# Processing summary persistence (summaries only, never file contents)
SUMMARY_FILE = os.environ.get('SUMMARY_FILE', os.path.join(os.path.expanduser('~'), '.batch_retagger', 'summaries.json'))
MAX_HISTORY_ITEMS = 50

# Logging configuration
import logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

logger.info(f"Writing ID3v2.{ID3_VERSION} tags with {TAG_PADDING} bytes of padding")
logger.info(f"Writable formats: {', '.join(ext for ext, info in FORMAT_SUPPORT.items() if info['write'])}")
