"""Resumable TUS Client

A Python client for the TUS resumable upload protocol.
Uploads files in chunks and resumes interrupted transfers from the offset
the server last acknowledged. No dependencies outside the standard library.
"""

__version__ = "0.1.0"

from resumable_tus.chunker import ChunkDescriptor, ChunkPlan, plan_chunks
from resumable_tus.client import ResumableUpload, TusClient, UploadState, UploadStats
from resumable_tus.config import DEFAULT_CHUNK_SIZE, UploadConfig
from resumable_tus.exceptions import (
    CreationFailed,
    FileAccessError,
    InconsistentOffset,
    InvalidConfiguration,
    InvalidState,
    OffsetMismatch,
    OffsetQueryFailed,
    ProtocolError,
    ResourceGone,
    ResourceNotFound,
    RetriesExhausted,
    TransportError,
    TransportInterrupted,
    TransportRejected,
    TusClientError,
    UnequalSize,
    UploadCancelled,
)
from resumable_tus.files import LocalFile
from resumable_tus.transport import HttpTransport, ServerInfo, Transport, TusExtension, UploadInfo

__all__ = [
    "TusClient",
    "ResumableUpload",
    "UploadState",
    "UploadStats",
    "UploadConfig",
    "DEFAULT_CHUNK_SIZE",
    "ChunkDescriptor",
    "ChunkPlan",
    "plan_chunks",
    "LocalFile",
    "Transport",
    "HttpTransport",
    "UploadInfo",
    "ServerInfo",
    "TusExtension",
    "TusClientError",
    "InvalidConfiguration",
    "InvalidState",
    "FileAccessError",
    "TransportError",
    "TransportInterrupted",
    "TransportRejected",
    "ResourceNotFound",
    "ProtocolError",
    "CreationFailed",
    "OffsetQueryFailed",
    "InconsistentOffset",
    "UnequalSize",
    "OffsetMismatch",
    "ResourceGone",
    "RetriesExhausted",
    "UploadCancelled",
]
