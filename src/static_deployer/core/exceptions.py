"""Custom exceptions for the static site deployer."""

from typing import Optional


class DeployerError(Exception):
    """Base exception for all deployer errors."""

    def __init__(self, message: str, code: Optional[str] = None):
        super().__init__(message)
        self.code = code


class ClientInputError(DeployerError):
    """The request itself is unusable. Never charged against the quota."""
    pass


class MissingFileError(ClientInputError):
    """Deploy request carried no file data or file name."""

    def __init__(self, message: str = "File data is required"):
        super().__init__(message, code="missing_file")


class UploadTooLargeError(ClientInputError):
    """Decoded upload exceeds the configured size limit."""

    def __init__(self, message: str):
        super().__init__(message, code="upload_too_large")


class StagingError(DeployerError):
    """Staging an upload on disk failed."""
    pass


class DecodeFailedError(StagingError):
    """File data could not be decoded from base64."""

    def __init__(self, message: str):
        super().__init__(message, code="decode_failed")


class ExtractFailedError(StagingError):
    """Archive could not be extracted."""

    def __init__(self, message: str):
        super().__init__(message, code="extract_failed")


class WriteFailedError(StagingError):
    """Writing into the staging directory failed."""

    def __init__(self, message: str):
        super().__init__(message, code="write_failed")


class PersistenceError(DeployerError):
    """Quota state could not be read or written."""
    pass


class StateLoadError(PersistenceError):
    """Persisted quota state could not be loaded."""
    pass


class StateSaveError(PersistenceError):
    """Quota state could not be saved."""
    pass
