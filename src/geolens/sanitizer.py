# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Text cleanup and escaping for content that ends up in GEO documents.

GEO output is read by LLM crawlers, so extracted text is normalized before
it enters the IR, and every IR value is escaped again when rendered:

1. clean_text(): IR text fields (headings, paragraphs, captions, metadata)
2. escape_html(): element text and attribute values in rendered HTML
3. json_for_script(): JSON-LD payload embedded in a <script> element
"""

from __future__ import annotations

import json
import re
from typing import Any

# Zero-width chars, bidi overrides, C0/C1 controls (tab/newline handled by \s collapse)
_CONTROL_CHAR_RE = re.compile(
    r"[\u200B-\u200F\u202A-\u202E\u2060-\u2069\uFEFF\uFFF9-\uFFFB"
    r"\u0000-\u0008\u000B\u000C\u000E-\u001F\u007F-\u009F]"
)

_ANSI_ESCAPE_RE = re.compile(r"\x1b\[[0-9;]*[a-zA-Z]")

_WHITESPACE_RE = re.compile(r"\s+")

_HTML_ESCAPES = {
    "&": "&amp;",
    "<": "&lt;",
    ">": "&gt;",
    '"': "&quot;",
    "'": "&#039;",
}
_HTML_ESCAPE_RE = re.compile(r"[&<>\"']")


def clean_text(text: str | None) -> str:
    """Normalize an extracted text field.

    - Removes ANSI escape sequences
    - Strips Unicode control characters (zero-width, bidi overrides)
    - Collapses all whitespace runs (including newlines) to one space
    - Trims both ends
    """
    if not text:
        return ""
    text = _ANSI_ESCAPE_RE.sub("", text)
    text = _CONTROL_CHAR_RE.sub("", text)
    return _WHITESPACE_RE.sub(" ", text).strip()


def escape_html(value: Any) -> str:
    """Escape ``& < > " '`` for safe interpolation into text or quoted attributes."""
    if value is None:
        return ""
    return _HTML_ESCAPE_RE.sub(lambda m: _HTML_ESCAPES[m.group(0)], str(value))


def json_for_script(data: Any) -> str:
    """Serialize *data* for a ``<script type="application/ld+json">`` block.

    ``<``, ``>`` and ``&`` become JSON unicode escapes so page text can never
    close the script element early.  Output stays valid JSON.
    """
    text = json.dumps(data, ensure_ascii=False, indent=2)
    return text.replace("&", "\\u0026").replace("<", "\\u003c").replace(">", "\\u003e")
