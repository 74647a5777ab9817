"""
Exceptions for Batch Retagger
Every per-file failure raised inside the pipeline derives from TaggerError
"""


class TaggerError(Exception):
    """Base exception for all tagging errors"""

    def __init__(self, message, details=None):
        super().__init__(message)
        self.message = message
        self.details = details

    def __str__(self):
        if self.details:
            return f"{self.message}: {self.details}"
        return self.message


class UnsupportedFormatError(TaggerError):
    """Raised when a file's format cannot be written"""

    def __init__(self, message, extension=None, details=None):
        super().__init__(message, details)
        self.extension = extension


class MetadataReadError(TaggerError):
    """Raised when existing metadata cannot be parsed"""

    def __init__(self, message, filename=None, details=None):
        super().__init__(message, details)
        self.filename = filename


class CoverArtError(TaggerError):
    """Raised when required cover art could not be resolved"""


class TagWriteError(TaggerError):
    """Raised when a new tag block cannot be built"""

    def __init__(self, message, frame=None, details=None):
        super().__init__(message, details)
        self.frame = frame


class FileUnavailableError(TaggerError):
    """Raised when a file id is no longer held by the registry"""

    def __init__(self, file_id, details=None):
        super().__init__(f"File {file_id} is no longer available, please select it again", details)
        self.file_id = file_id
