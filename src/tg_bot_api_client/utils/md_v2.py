"""The minimal part of MarkdownV2 needed to send user-provided text safely.

Inline URLs (``[text](http://example.com/)``) are kept as links: their text
is escaped as plain text and only ``)`` and ``\\`` are escaped in the URL.
Code spans and pre-formatted blocks are not supported.
"""

import re

SPECIAL_CHARS_RE = re.compile(r"([_*\[\]()~`>#+\-=|{}.!])")
INLINE_URL_RE = re.compile(r"\[(?P<text>[^]]+)\]\((?P<href>[^\s]+)\)")
URL_SPECIAL_CHARS_RE = re.compile(r"([)\\])")


def escape_text(text: str) -> str:
    return SPECIAL_CHARS_RE.sub(r"\\\1", text)


def _escape_inline_url(match: re.Match) -> str:
    href = URL_SPECIAL_CHARS_RE.sub(r"\\\1", match.group("href"))
    return f"[{escape_text(match.group('text'))}]({href})"


def escape(text: str) -> str:
    """Escape text for ``parse_mode=MarkdownV2``, keeping inline URLs intact."""
    if not text or not text.strip():
        return text

    parts = []
    last = 0
    for match in INLINE_URL_RE.finditer(text):
        parts.append(escape_text(text[last:match.start()]))
        parts.append(_escape_inline_url(match))
        last = match.end()
    parts.append(escape_text(text[last:]))
    return "".join(parts)


def _wrap(marker: str, text: str, escaped: bool) -> str:
    return f"{marker}{escape(text) if escaped else text}{marker}"


def format_bold(text: str, escaped: bool = True) -> str:
    return _wrap("*", text, escaped)


def format_italic(text: str, escaped: bool = True) -> str:
    return _wrap("_", text, escaped)


def format_underline(text: str, escaped: bool = True) -> str:
    return _wrap("__", text, escaped)


def format_strikethrough(text: str, escaped: bool = True) -> str:
    return _wrap("~", text, escaped)
