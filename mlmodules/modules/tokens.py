"""Token replacement in module content."""

import logging
import re
from collections.abc import Mapping
from pathlib import PurePath
from typing import Optional, Union

from ..utils import is_text_file

logger = logging.getLogger(__name__)


class TokenReplacer:
    """Replaces literal tokens in text module files.

    All tokens are replaced in a single left-to-right pass. Where tokens
    overlap, the longest token wins at a given position, and tokens of
    equal length are tried in the order they were given. Replacement
    values are never scanned again.

    Examples:
        >>> replacer = TokenReplacer({"%%REPLACEME%%": "hello-world"})
        >>> replacer.transform(b"log('%%REPLACEME%%')", "lib.xqy")
        b"log('hello-world')"
    """

    def __init__(self, tokens: Optional[Mapping[str, str]] = None):
        """Initialize token replacer.

        Args:
            tokens: Mapping of literal token to replacement value
        """
        self.tokens: dict[str, str] = {k: v for k, v in (tokens or {}).items() if k}
        self._pattern: Optional[re.Pattern[str]] = None
        if self.tokens:
            ordered = sorted(self.tokens, key=len, reverse=True)
            self._pattern = re.compile("|".join(re.escape(t) for t in ordered))

    def __bool__(self) -> bool:
        return self._pattern is not None

    def replace_text(self, text: str) -> str:
        """Replace every token occurrence in a string."""
        if self._pattern is None:
            return text
        return self._pattern.sub(lambda m: self.tokens[m.group(0)], text)

    def transform(self, content: bytes, path: Union[str, PurePath]) -> bytes:
        """Apply token replacement to file content.

        Args:
            content: Raw file content
            path: File path or name, used to decide whether it is text

        Returns:
            Transformed content, or the original bytes for binary files
            and when no tokens are configured
        """
        if self._pattern is None or not is_text_file(path):
            return content

        try:
            text = content.decode("utf-8")
        except UnicodeDecodeError:
            logger.debug(f"Not replacing tokens in {path}: content is not UTF-8")
            return content

        replaced = self.replace_text(text)
        if replaced == text:
            return content
        return replaced.encode("utf-8")
