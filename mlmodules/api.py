"""Client for the document store REST API."""

from __future__ import annotations

import logging
from typing import Any, Protocol

import httpx

from .config import config
from .exceptions import (
    DocumentStoreAuthenticationError,
    DocumentStoreError,
    DocumentStoreInvalidResponseError,
    DocumentStoreNetworkError,
    DocumentStoreNotFoundError,
    DocumentStorePermissionError,
)

logger = logging.getLogger(__name__)


class DocumentStore(Protocol):
    """Operations the modules loader needs from a document store."""

    def write_document(
        self,
        uri: str,
        content: bytes,
        content_type: str | None = None,
        collections: tuple[str, ...] | list[str] = (),
        permissions: list[tuple[str, str]] | None = None,
    ) -> None: ...

    def exists(self, uri: str) -> bool: ...

    def eval_query(self, xquery: str) -> str: ...


class DocumentStoreClient:
    """Client for the document endpoints of a REST API server.

    Examples:
        >>> with DocumentStoreClient(host="localhost", port=8000,
        ...                          username="admin", password="admin",
        ...                          database="Modules") as client:
        ...     client.write_document("/ext/hello.xqy", b"'hello'")
        ...     client.exists("/ext/hello.xqy")
        True
    """

    def __init__(
        self,
        host: str | None = None,
        port: int | None = None,
        username: str | None = None,
        password: str | None = None,
        database: str | None = None,
        scheme: str | None = None,
        timeout: float = 30.0,
        transport: httpx.BaseTransport | None = None,
    ):
        """Initialize document store client.

        Args:
            host: Server host (uses config if not provided)
            port: REST API server port (uses config if not provided)
            username: User name for digest authentication
            password: Password for digest authentication
            database: Database to read/write (server default if not provided)
            scheme: "http" or "https"
            timeout: Request timeout in seconds (default: 30.0)
            transport: Optional httpx transport (used by tests)
        """
        self.host = host or config.host
        self.port = port or config.port
        self.username = username or config.username
        self.password = password or config.password
        self.database = database or config.database
        self.scheme = scheme or config.scheme
        self.timeout = timeout
        self.base_url = f"{self.scheme}://{self.host}:{self.port}"
        self._transport = transport
        self._client: httpx.Client | None = None

    def _get_client(self) -> httpx.Client:
        """Get or create the httpx client."""
        if self._client is None or self._client.is_closed:
            auth = None
            if self.username:
                auth = httpx.DigestAuth(self.username, self.password or "")
            kwargs: dict[str, Any] = {}
            if self._transport is not None:
                kwargs["transport"] = self._transport
            self._client = httpx.Client(
                base_url=self.base_url,
                auth=auth,
                timeout=httpx.Timeout(self.timeout),
                **kwargs,
            )
        return self._client

    def close(self) -> None:
        """Close the client and release connections."""
        if self._client is not None and not self._client.is_closed:
            self._client.close()
            self._client = None

    def __enter__(self) -> DocumentStoreClient:
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    def _error_for_status(self, response: httpx.Response) -> DocumentStoreError:
        """Map an unsuccessful response to an exception."""
        status_code = response.status_code
        if status_code == 401:
            return DocumentStoreAuthenticationError(
                "Invalid credentials or unauthorized access", status_code
            )
        if status_code == 403:
            return DocumentStorePermissionError(
                "Access forbidden - check the user's roles", status_code
            )
        if status_code == 404:
            return DocumentStoreNotFoundError("Resource not found", status_code)

        error_msg = f"Request failed with status {status_code}"
        try:
            if response.content:
                error_data = response.json()
                if isinstance(error_data, dict):
                    details = error_data.get("errorResponse", error_data)
                    msg = details.get("message") if isinstance(details, dict) else None
                    if msg:
                        error_msg = f"{error_msg}: {msg}"
        except ValueError:
            # Body is not JSON, keep the status-based message
            pass
        return DocumentStoreError(error_msg, status_code)

    def _request(self, method: str, endpoint: str, **kwargs: Any) -> httpx.Response:
        """Send a request and raise on unsuccessful responses.

        Raises:
            DocumentStoreError: If the request fails
        """
        client = self._get_client()
        try:
            response = client.request(method, endpoint, **kwargs)
        except httpx.RequestError as e:
            raise DocumentStoreNetworkError(f"Network error: {e}") from e

        if response.is_error:
            raise self._error_for_status(response)
        return response

    def _database_params(self) -> dict[str, str]:
        return {"database": self.database} if self.database else {}

    def write_document(
        self,
        uri: str,
        content: bytes,
        content_type: str | None = None,
        collections: tuple[str, ...] | list[str] = (),
        permissions: list[tuple[str, str]] | None = None,
    ) -> None:
        """Insert or replace a document.

        Args:
            uri: Document URI
            content: Document content
            content_type: MIME type hint for the server
            collections: Collections to add the document to
            permissions: (role, capability) pairs

        Raises:
            DocumentStoreError: If the write fails
        """
        params: list[tuple[str, str]] = [("uri", uri)]
        params.extend(self._database_params().items())
        params.extend(("collection", c) for c in collections)
        params.extend((f"perm:{role}", capability) for role, capability in permissions or [])

        headers = {"Content-Type": content_type or "application/octet-stream"}
        self._request("PUT", "/v1/documents", params=params, content=content, headers=headers)
        logger.debug(f"Wrote {len(content)} bytes to {uri}")

    def exists(self, uri: str) -> bool:
        """Check whether a document exists.

        Raises:
            DocumentStoreError: If the check fails for another reason
        """
        params = {"uri": uri, **self._database_params()}
        try:
            self._request("HEAD", "/v1/documents", params=params)
        except DocumentStoreNotFoundError:
            return False
        return True

    def eval_query(self, xquery: str) -> str:
        """Evaluate an XQuery expression and return its result as a string.

        Multiple result items are joined with newlines; an empty sequence
        gives an empty string.

        Raises:
            DocumentStoreError: If evaluation fails
        """
        data = {"xquery": xquery, **self._database_params()}
        response = self._request(
            "POST",
            "/v1/eval",
            data=data,
            headers={"Accept": "multipart/mixed"},
        )
        return "\n".join(parse_multipart_items(response))


def parse_multipart_items(response: httpx.Response) -> list[str]:
    """Extract the body of every part of a multipart/mixed response.

    Raises:
        DocumentStoreInvalidResponseError: If the boundary is missing
    """
    if not response.content:
        return []

    content_type = response.headers.get("Content-Type", "")
    if not content_type.startswith("multipart/"):
        return [response.text]

    boundary = None
    for param in content_type.split(";")[1:]:
        name, _, value = param.strip().partition("=")
        if name.lower() == "boundary":
            boundary = value.strip('"')
    if not boundary:
        raise DocumentStoreInvalidResponseError(
            f"Multipart response without boundary: {content_type}"
        )

    items: list[str] = []
    for part in response.text.split(f"--{boundary}"):
        part = part.strip("\r\n")
        if not part or part == "--":
            continue
        _, sep, body = part.replace("\r\n", "\n").partition("\n\n")
        if sep:
            items.append(body)
    return items
