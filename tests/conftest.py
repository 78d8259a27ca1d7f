"""Shared fixtures for mlmodules tests."""

import os
import threading
import time
from pathlib import Path
from typing import Optional

import pytest

from mlmodules.exceptions import DocumentStoreError

# 14 library/asset files, 4 options, 3 services, 5 transforms
SAMPLE_FILES: dict[str, str] = {
    "root/include-module.xqy": "xquery version '1.0-ml'; 'include'",
    "root/include-module.sjs": "'include';",
    "root/module3.xqy": "xquery version '1.0-ml'; 'module3'",
    "root/module3.sjs": "'module3';",
    "root/rewriter.json": '{"rewriter": true}',
    "root/lib/module4.xqy": "xquery version '1.0-ml'; 'module4'",
    "root/lib/module4.sjs": "'module4';",
    "ext/module1.xqy": "xquery version '1.0-ml'; 'module1'",
    "ext/module1.sjs": "'module1';",
    "ext/lib/module2.xqy": "xquery version '1.0-ml'; 'module2'",
    "ext/lib/module2.sjs": "'module2';",
    "ext/path.with.dots/inside-dots.xqy": "xquery version '1.0-ml'; 'dots'",
    "ext/rewriter-ext.json": '{"rewriter": "ext"}',
    "ext/rewriter-ext.xml": "<rewriter/>",
    "options/sample-options.xml": "<options/>",
    "options/sample-options.json": '{"options": {}}',
    "options/other-options.json": '{"options": {}}',
    "options/more-options.json": '{"options": {}}',
    "services/sample.xqy": "module namespace resource = 'sample';",
    "services/sample-sjs.sjs": "exports.GET = get;",
    "services/another.xqy": "module namespace resource = 'another';",
    "transforms/xquery-transform.xqy": "module namespace transform = 'x';",
    "transforms/js-transform.sjs": "exports.transform = transform;",
    "transforms/xslt-transform.xsl": "<xsl:stylesheet/>",
    "transforms/another.xqy": "module namespace transform = 'another';",
    "transforms/other.sjs": "exports.transform = other;",
}


def write_tree(root: Path, files: dict[str, str]) -> Path:
    """Create files (relative path -> text) below a root directory."""
    for relative_path, content in files.items():
        path = root / relative_path
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content, encoding="utf-8")
    return root


def touch(path: Path, seconds_ahead: float = 10.0) -> None:
    """Move a file's modification time into the future."""
    mtime = path.stat().st_mtime + seconds_ahead
    os.utime(path, (mtime, mtime))


class FakeDocumentStore:
    """In-memory document store recording every write."""

    def __init__(self, delay: float = 0.0):
        self.documents: dict[str, bytes] = {}
        self.content_types: dict[str, Optional[str]] = {}
        self.writes: list[str] = []
        self.fail_uris: set[str] = set()
        self.delay = delay
        self.in_flight = 0
        self.max_in_flight = 0
        self._lock = threading.Lock()

    def write_document(
        self, uri, content, content_type=None, collections=(), permissions=None
    ):
        with self._lock:
            self.in_flight += 1
            self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.delay:
                time.sleep(self.delay)
            if uri in self.fail_uris:
                raise DocumentStoreError(f"Write refused for {uri}", 500)
            with self._lock:
                self.documents[uri] = content
                self.content_types[uri] = content_type
                self.writes.append(uri)
        finally:
            with self._lock:
                self.in_flight -= 1

    def exists(self, uri):
        return uri in self.documents

    def eval_query(self, xquery):
        return str(len(self.documents))


@pytest.fixture
def sample_base_dir(tmp_path):
    """A modules root holding 26 classifiable files."""
    return write_tree(tmp_path / "sample-base-dir", SAMPLE_FILES)


@pytest.fixture
def store():
    """An empty in-memory document store."""
    return FakeDocumentStore()


@pytest.fixture
def state_file(tmp_path):
    """Location of a module state file (not created)."""
    return tmp_path / "state" / "modules.json"
