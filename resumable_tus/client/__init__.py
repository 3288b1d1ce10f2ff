"""TUS protocol client implementations."""

from resumable_tus.client.base import TusClient
from resumable_tus.client.machine import ResumableUpload, UploadState
from resumable_tus.client.stats import UploadStats

__all__ = ["TusClient", "ResumableUpload", "UploadState", "UploadStats"]
