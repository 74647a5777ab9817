"""
Cover art image checks for Batch Retagger
Detects corrupted or unusable artwork before it is embedded
"""
from io import BytesIO

from PIL import Image, UnidentifiedImageError

from config import MAX_COVER_DIMENSION, logger

PIL_FORMAT_MIME_TYPES = {
    'jpeg': 'image/jpeg',
    'png': 'image/png',
    'gif': 'image/gif',
    'webp': 'image/webp',
    'bmp': 'image/bmp'
}

IMAGE_SIGNATURES = (
    (b'\xff\xd8', 'image/jpeg'),
    (b'\x89PNG\r\n\x1a\n', 'image/png'),
    (b'GIF8', 'image/gif'),
    (b'BM', 'image/bmp')
)


def detect_mime_type(image_data):
    """MIME type from the leading signature bytes, JPEG when unrecognised"""
    head = bytes(image_data[:12])
    for magic, mime in IMAGE_SIGNATURES:
        if head.startswith(magic):
            return mime
    if head[:4] == b'RIFF' and head[8:12] == b'WEBP':
        return 'image/webp'
    return 'image/jpeg'


def is_corrupted_image(image_bytes):
    """
    Validate image data, including checks for trailing garbage.
    Returns True if corrupted, False if valid.
    """
    if not image_bytes:
        return True

    try:
        img = Image.open(BytesIO(image_bytes))
        img.verify()

        # verify() leaves the image unusable, reopen for a full decode
        img = Image.open(BytesIO(image_bytes))
        if img.width > MAX_COVER_DIMENSION or img.height > MAX_COVER_DIMENSION:
            return True
        img.load()

        format_lower = img.format.lower() if img.format else ''

        if format_lower == 'jpeg':
            end_pos = image_bytes.rfind(b'\xff\xd9')
            if end_pos >= 0 and end_pos + 2 < len(image_bytes) - 2:  # Allow 2 bytes padding
                return True

        elif format_lower == 'png':
            # IEND chunk is 12 bytes total (4 length + 4 'IEND' + 4 CRC)
            end_pos = image_bytes.rfind(b'IEND')
            if end_pos >= 0 and end_pos + 8 < len(image_bytes) - 2:
                return True

        return False

    except (UnidentifiedImageError, Image.DecompressionBombError, OSError, ValueError, SyntaxError) as e:
        logger.debug(f"Image failed validation: {e}")
        return True


def image_mime_type(image_bytes):
    """MIME type reported by Pillow, falling back to signature sniffing"""
    try:
        with Image.open(BytesIO(image_bytes)) as img:
            mime = PIL_FORMAT_MIME_TYPES.get((img.format or '').lower())
    except (UnidentifiedImageError, Image.DecompressionBombError, OSError):
        mime = None
    return mime or detect_mime_type(image_bytes)
