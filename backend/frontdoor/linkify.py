"""Turn bare http(s) URLs in free text into clickable links."""

import html
import re
from dataclasses import dataclass

URL_RE = re.compile(r"https?://[^\s]+")


@dataclass(frozen=True)
class Link:
    url: str


def linkify_text(text: str) -> list:
    """Split ``text`` into plain strings and Link parts, in order.

    Text without any URL comes back as a single-element list.
    """
    parts: list = []
    last = 0
    for match in URL_RE.finditer(text):
        if match.start() > last:
            parts.append(text[last:match.start()])
        parts.append(Link(match.group(0)))
        last = match.end()
    if last < len(text):
        parts.append(text[last:])
    return parts or [text]


def render_html(text: str) -> str:
    out = []
    for part in linkify_text(text):
        if isinstance(part, Link):
            url = html.escape(part.url, quote=True)
            out.append(f'<a href="{url}" target="_blank" rel="noopener noreferrer">{url}</a>')
        else:
            out.append(html.escape(part, quote=False))
    return "".join(out)


def parts_json(text: str) -> list[dict]:
    return [
        {"type": "link", "href": p.url} if isinstance(p, Link) else {"type": "text", "text": p}
        for p in linkify_text(text)
    ]
