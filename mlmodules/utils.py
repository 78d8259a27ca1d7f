"""Utility functions and constants for mlmodules."""

import mimetypes
from pathlib import PurePath
from typing import Union

# =============================================================================
# Constants for module loading
# =============================================================================

# Number of files written per batch (bounds concurrent in-flight writes)
DEFAULT_BATCH_SIZE: int = 50

# REST API group/server used to build options and namespace URIs
DEFAULT_REST_GROUP: str = "Default"
DEFAULT_REST_SERVER: str = "App-Services"

# Permissions applied to loaded modules (role,capability pairs)
DEFAULT_MODULE_PERMISSIONS: str = (
    "rest-admin,read,rest-admin,update,rest-extension-user,execute"
)

# =============================================================================
# File type classification
# =============================================================================

# Code modules executed by the server
LIBRARY_EXTENSIONS: frozenset[str] = frozenset(
    {".xqy", ".xqm", ".xq", ".xquery", ".sjs", ".mjs", ".js", ".xsl", ".xslt"}
)

# Extensions whose content is treated as text for token replacement
TEXT_EXTENSIONS: frozenset[str] = LIBRARY_EXTENSIONS | frozenset(
    {
        ".xml",
        ".json",
        ".txt",
        ".html",
        ".htm",
        ".css",
        ".csv",
        ".tde",
        ".md",
        ".properties",
        ".yaml",
        ".yml",
        ".sparql",
        ".sql",
        ".xsd",
        ".svg",
    }
)

_CONTENT_TYPES: dict[str, str] = {
    ".xqy": "application/vnd.marklogic-xdmp",
    ".xqm": "application/vnd.marklogic-xdmp",
    ".xq": "application/vnd.marklogic-xdmp",
    ".xquery": "application/vnd.marklogic-xdmp",
    ".sjs": "application/vnd.marklogic-javascript",
    ".mjs": "application/vnd.marklogic-js-module",
    ".xsl": "application/xslt+xml",
    ".xslt": "application/xslt+xml",
    ".tde": "application/xml",
}


def file_extension(path: Union[str, PurePath]) -> str:
    """Return the lower-cased extension of a path (e.g. ".xqy")."""
    return PurePath(path).suffix.lower()


def is_text_file(path: Union[str, PurePath]) -> bool:
    """Check whether a file is text, based on its extension.

    Args:
        path: File path or name

    Returns:
        True if token replacement may be applied to the file
    """
    return file_extension(path) in TEXT_EXTENSIONS


def content_type_for(path: Union[str, PurePath]) -> str:
    """Guess the content type hint sent with a document write.

    Args:
        path: File path or name

    Returns:
        MIME type string (defaults to 'application/octet-stream')
    """
    ext = file_extension(path)
    if ext in _CONTENT_TYPES:
        return _CONTENT_TYPES[ext]

    mime_type, _ = mimetypes.guess_type(str(path))
    if mime_type:
        return mime_type
    if ext in TEXT_EXTENSIONS:
        return "text/plain"
    return "application/octet-stream"


# =============================================================================
# Size formatting utilities
# =============================================================================


def format_size(size_bytes: int) -> str:
    """Format file size in human-readable format.

    Args:
        size_bytes: Size in bytes

    Returns:
        Human-readable size string (e.g., "1.5 MB")
    """
    if size_bytes < 1024:
        return f"{size_bytes} B"
    elif size_bytes < 1024 * 1024:
        return f"{size_bytes / 1024:.1f} KB"
    elif size_bytes < 1024 * 1024 * 1024:
        return f"{size_bytes / 1024 / 1024:.1f} MB"
    else:
        return f"{size_bytes / 1024 / 1024 / 1024:.1f} GB"
