"""Custom exception classes for the Controller."""


class DFSException(Exception):
    """
    Base exception class for all ChunkVault errors.
    """
    pass


class FileNotFoundError(DFSException):
    """
    Raised when a requested file does not exist.
    """
    pass


class ChunkNotFoundError(DFSException):
    """
    Raised when a ledger operation targets a fingerprint with no chunk row.
    """
    pass


class UnauthorizedAccessError(DFSException):
    """
    Raised when a caller attempts to access a file they don't own.
    """
    pass


class DuplicateFingerprintError(DFSException):
    """
    Raised when a concurrent writer already created a chunk row for this fingerprint.
    """

    def __init__(self, fingerprint: str):
        super().__init__(f"Chunk {fingerprint} already exists")
        self.fingerprint = fingerprint


class IntegrityFaultError(DFSException):
    """
    Raised when the manifest, ledger and object store disagree
    (missing chunk row, missing object, digest or size mismatch).
    """
    pass


class StoreUnavailableError(DFSException):
    """
    Raised when the object store keeps failing after retries.
    """
    pass


class InvalidUploadError(DFSException):
    """
    Raised when an upload is rejected before chunking begins.
    """
    pass


class EmptyUploadError(InvalidUploadError):
    """
    Raised when the uploaded content has no bytes.
    """
    pass


class UploadTooLargeError(InvalidUploadError):
    """
    Raised when the uploaded content exceeds the configured limit.
    """
    pass


class UnsupportedContentTypeError(InvalidUploadError):
    """
    Raised when the declared content type is not in the allow-list.
    """
    pass


class UploadCancelledError(DFSException):
    """
    Raised when an in-flight upload is cancelled or times out.
    """
    pass
