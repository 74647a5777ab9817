"""
ZIP packaging of rewritten files for Batch Retagger
"""
import os
import zipfile
from io import BytesIO

from config import logger


def _unique_name(name, used):
    if name not in used:
        return name
    stem, ext = os.path.splitext(name)
    counter = 2
    while f"{stem} ({counter}){ext}" in used:
        counter += 1
    return f"{stem} ({counter}){ext}"


def build_zip(results):
    """
    Package every successful result into a ZIP archive

    Duplicate output names get a " (2)", " (3)" ... suffix.

    Returns:
        bytes: The archive contents
    """
    buffer = BytesIO()
    used = set()
    count = 0

    # MP3 data is already compressed
    with zipfile.ZipFile(buffer, 'w', zipfile.ZIP_STORED) as archive:
        for result in results:
            if not result.success or result.output is None:
                continue
            name = _unique_name(result.new_name, used)
            used.add(name)
            archive.writestr(name, result.output)
            count += 1

    logger.info(f"Packed {count} files into archive")
    return buffer.getvalue()
