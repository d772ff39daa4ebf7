"""Core utilities for the Hearth backend."""

from .errors import ApiError, ErrorKind, Result, ServiceError
from .storage import UploadedImage, ingest_attachment

__all__ = ["ApiError", "ErrorKind", "Result", "ServiceError", "UploadedImage", "ingest_attachment"]
