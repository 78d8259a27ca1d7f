"""mlmodules - incremental loading of modules into a document store."""

from .api import DocumentStore, DocumentStoreClient
from .exceptions import (
    ConfigurationError,
    DiscoveryError,
    DocumentStoreAuthenticationError,
    DocumentStoreError,
    DocumentStoreInvalidResponseError,
    DocumentStoreNetworkError,
    DocumentStoreNotFoundError,
    DocumentStorePermissionError,
    MlModulesError,
    StateStoreError,
    UploadError,
)
from .modules import LoadOptions, ModulesLoader, ModuleStateStore

__all__ = [
    "DocumentStore",
    "DocumentStoreClient",
    "ModulesLoader",
    "LoadOptions",
    "ModuleStateStore",
    "MlModulesError",
    "ConfigurationError",
    "DiscoveryError",
    "StateStoreError",
    "UploadError",
    "DocumentStoreError",
    "DocumentStoreAuthenticationError",
    "DocumentStoreInvalidResponseError",
    "DocumentStoreNetworkError",
    "DocumentStoreNotFoundError",
    "DocumentStorePermissionError",
]
