"""Exceptions raised by mlmodules."""

from typing import Any, Optional


class MlModulesError(Exception):
    """Base exception for all mlmodules errors."""


class ConfigurationError(MlModulesError):
    """Raised when load options or connection settings are invalid."""


class DiscoveryError(MlModulesError):
    """Raised when a modules root directory cannot be scanned."""


class StateStoreError(MlModulesError):
    """Raised when the persisted module timestamps cannot be read or written."""


class UploadError(MlModulesError):
    """A single module file could not be written to the document store.

    Upload errors are collected per file and never abort a run.
    """

    def __init__(self, file: Any, cause: BaseException):
        self.file = file
        self.cause = cause
        super().__init__(f"Failed to load {file.relative_path}: {cause}")


class DocumentStoreError(MlModulesError):
    """Raised when a request to the document store fails."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        self.status_code = status_code
        super().__init__(message)


class DocumentStoreAuthenticationError(DocumentStoreError):
    """Raised when the document store rejects the credentials."""


class DocumentStorePermissionError(DocumentStoreError):
    """Raised when the user lacks a privilege for the request."""


class DocumentStoreNotFoundError(DocumentStoreError):
    """Raised when an endpoint or document does not exist."""


class DocumentStoreNetworkError(DocumentStoreError):
    """Raised when the document store cannot be reached."""


class DocumentStoreInvalidResponseError(DocumentStoreError):
    """Raised when the document store returns an unparseable response."""
