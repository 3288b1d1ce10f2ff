"""
Exception classes raised by resumable_tus.

Every error carries enough context (upload URL, last known offset, HTTP
status and body where one exists) to diagnose a failed transfer or to
resume it by hand.
"""

from typing import Optional


class TusClientError(Exception):
    """
    Base class for all errors raised by the client.

    Attributes:
        message (str): Main message of the exception
        url (str): Upload or destination URL involved, if known
        offset (int): Last offset known to the client, if any
        status_code (int): HTTP status code of the response indicating an error
        response_content (bytes): Content of the response indicating an error
    """

    def __init__(
        self,
        message: Optional[str] = None,
        url: Optional[str] = None,
        offset: Optional[int] = None,
        status_code: Optional[int] = None,
        response_content: Optional[bytes] = None,
    ):
        default_message = f"Communication with TUS server failed with status {status_code}"
        message = message or default_message
        super().__init__(message)
        self.message = message
        self.url = url
        self.offset = offset
        self.status_code = status_code
        self.response_content = response_content


class InvalidConfiguration(TusClientError, ValueError):
    """A client or upload setting is out of range (for example a chunk size of 0)."""


class FileAccessError(TusClientError):
    """The local file could not be measured or read. Never retried."""


# Transport errors


class TransportError(TusClientError):
    """Base class for failures reported by a transport."""


class TransportInterrupted(TransportError):
    """The request did not complete: connection drop, timeout or gateway error.

    This is the only retryable error kind.
    """


class TransportRejected(TransportError):
    """The server answered with an explicit, non-success status."""


class ResourceNotFound(TransportRejected):
    """The server reports that the upload resource does not exist (404/410)."""


class ProtocolError(TransportError):
    """The server response does not follow the tus protocol."""


# Upload errors


class CreationFailed(TusClientError):
    """The server did not create the upload resource."""


class OffsetQueryFailed(TusClientError):
    """The current offset of the upload resource could not be read."""


class InconsistentOffset(TusClientError):
    """The server reported an offset beyond the total length of the upload."""


class UnequalSize(TusClientError):
    """The local file and the upload resource on the server differ in length.

    Attributes:
        local_length (int): Length of the local file
        server_length (int): Upload-Length the resource was created with
    """

    def __init__(self, message=None, local_length=None, server_length=None, **kwargs):
        super().__init__(message, **kwargs)
        self.local_length = local_length
        self.server_length = server_length


class OffsetMismatch(TusClientError):
    """The acknowledged offset does not match the bytes that were sent.

    Attributes:
        expected (int): Offset the client expected after the chunk
        actual (int): Offset reported by the server
    """

    def __init__(self, message=None, expected=None, actual=None, **kwargs):
        super().__init__(message, **kwargs)
        self.expected = expected
        self.actual = actual


class ResourceGone(TusClientError):
    """The upload resource no longer exists on the server."""


class RetriesExhausted(TusClientError):
    """Transport interruptions persisted past the configured retry budget.

    Attributes:
        attempts (int): Number of attempts made without progress
    """

    def __init__(self, message=None, attempts=None, **kwargs):
        super().__init__(message, **kwargs)
        self.attempts = attempts


class UploadCancelled(TusClientError):
    """The caller cancelled the upload between two chunks."""


class InvalidState(TusClientError):
    """The requested operation is not allowed in the upload's current state."""
