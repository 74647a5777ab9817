"""
ID3v2 tag block stripping for Batch Retagger
Removes every ID3v2 block at the front of an MP3 so only audio data remains
"""
from config import logger

ID3_MAGIC = b'ID3'
HEADER_SIZE = 10
FOOTER_SIZE = 10
FOOTER_FLAG = 0x10
SUPPORTED_VERSIONS = (2, 3, 4)


def decode_synchsafe(data):
    """Decode a 4-byte synchsafe integer (7 significant bits per byte)"""
    return ((data[0] & 0x7F) << 21) | ((data[1] & 0x7F) << 14) | ((data[2] & 0x7F) << 7) | (data[3] & 0x7F)


def encode_synchsafe(value):
    """Encode an integer below 2**28 as 4 synchsafe bytes"""
    if value < 0 or value >= 1 << 28:
        raise ValueError(f"Value {value} does not fit in a synchsafe integer")
    return bytes([(value >> 21) & 0x7F, (value >> 14) & 0x7F, (value >> 7) & 0x7F, value & 0x7F])


def strip_id3v2_tags(buffer):
    """
    Strip all leading ID3v2 tag blocks from a raw audio buffer

    Stops at the first offset that does not hold a complete ID3v2 header
    with a supported major version. Malformed data is left in place and
    returned as part of the payload.

    Args:
        buffer: Raw file contents

    Returns:
        bytes: The remaining audio payload
    """
    data = memoryview(buffer)
    offset = 0

    while len(data) - offset >= HEADER_SIZE:
        if data[offset:offset + 3] != ID3_MAGIC:
            break

        version = data[offset + 3]
        if version not in SUPPORTED_VERSIONS:
            break

        flags = data[offset + 5]
        size = decode_synchsafe(data[offset + 6:offset + 10])
        block_size = HEADER_SIZE + size
        if version == 4 and flags & FOOTER_FLAG:
            block_size += FOOTER_SIZE

        offset += block_size
        logger.debug(f"Stripped ID3v2.{version} tag ({size} bytes)")

    if offset == 0:
        return bytes(buffer)

    payload = data[offset:].tobytes()
    logger.debug(f"Extracted {len(payload)} bytes of audio (stripped {min(offset, len(data))} bytes of tags)")
    return payload
