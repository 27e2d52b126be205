# backend/services/sanitizer.py

from __future__ import annotations

import html
import re

# A fenced block opens and closes with three backticks; an unclosed fence is plain text.
FENCED_CODE_RE = re.compile(r"```.*?```", re.DOTALL)


def sanitize_preserving_code_blocks(text: str | None) -> str:
    """
    Trim ``text`` and HTML-escape everything outside fenced code blocks.

    Fenced blocks are copied through untouched so code pasted into a room
    description or a chat message keeps its ``<``, ``>`` and ``&``.

    Example:
        >>> sanitize_preserving_code_blocks("<b>hi</b> ```a < b```")
        '&lt;b&gt;hi&lt;/b&gt; ```a < b```'
    """
    if not text:
        return ""

    text = text.strip()
    parts = []
    cursor = 0
    for match in FENCED_CODE_RE.finditer(text):
        parts.append(html.escape(text[cursor:match.start()], quote=False))
        parts.append(match.group(0))
        cursor = match.end()
    parts.append(html.escape(text[cursor:], quote=False))
    return "".join(parts)
