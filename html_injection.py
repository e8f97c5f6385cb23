# html_injection.py
# Scrolly contributors, Copyright(C)2026, MIT License.
# -*- coding: utf-8 -*-
"""
HTML detection and script injection shared by both hosts.

The browser server (scrolly_server.py) applies this as HTTP middleware; the
desktop host (scrolly_desktop.py) applies it while reading assets directly.
Both go through rewrite_html() so the rules stay in one place.
"""
from typing import NamedTuple, Optional

HTML_CONTENT_TYPE = "text/html; charset=utf-8"
OPEN_HTML_MARKER = b"<html"
CLOSE_BODY_MARKER = b"</body>"
HTML_EXTENSIONS = ("", ".html", ".htm")

# Sent to the server every 5 seconds only to keep the control channel alive.
HEARTBEAT_SCRIPT = """<script>
const wsUrl = (window.location.protocol === 'https:' ? 'wss://' : 'ws://') + window.location.host + '/ws';
const ws = new WebSocket(wsUrl);
ws.onopen = () => {
    console.log('Connected to server');
    setInterval(() => {
        if (ws.readyState === WebSocket.OPEN) {
            ws.send('ping');
        }
    }, 5000);
};
ws.onclose = () => console.log('Disconnected from server');
ws.onerror = (error) => console.error('WebSocket error:', error);
</script>
"""

# Desktop window: hand external links to the system browser.
LINK_BRIDGE_SCRIPT = """<script>
document.addEventListener('click', (e) => {
    const target = e.target.closest('a');
    if (target && target.href && (target.target === '_blank' || target.href.startsWith('http'))) {
        e.preventDefault();
        if (window.pywebview && window.pywebview.api && window.pywebview.api.open_external) {
            window.pywebview.api.open_external(target.href);
        }
    }
});
</script>
"""


class Rewrite(NamedTuple):
    body: bytes
    content_type: str
    injected: bool


def library_scripts(prefix: str = "/") -> str:
    return (
        f'<script src="{prefix}js-yaml.min.js"></script>\n'
        f'<script src="{prefix}hotkeys.js"></script>\n'
    )


def presentation_fragment(server_mode: bool) -> str:
    """Injection for the browser host. Server mode has no control channel."""
    fragment = "\n"
    if not server_mode:
        fragment += HEARTBEAT_SCRIPT
    return fragment + library_scripts("/")


def desktop_fragment() -> str:
    return library_scripts("") + LINK_BRIDGE_SCRIPT


def path_extension(path: str) -> str:
    name = path.rsplit("/", 1)[-1]
    dot = name.rfind(".")
    return name[dot:] if dot != -1 else ""


def is_html_candidate(path: str) -> bool:
    """Whether a request path might return HTML and needs buffering."""
    if path == "/":
        return True
    return path_extension(path) in HTML_EXTENSIONS


def is_html_document(body: bytes) -> bool:
    return OPEN_HTML_MARKER in body or CLOSE_BODY_MARKER in body


def inject_before_body_close(body: bytes, fragment: bytes) -> bytes:
    idx = body.find(CLOSE_BODY_MARKER)
    if idx == -1:
        return body
    return body[:idx] + fragment + body[idx:]


# --- Content sniffing ---
# Signatures checked against the first 512 bytes, in order.
_SNIFF_LEN = 512

_HTML_TAGS = (
    b"<!DOCTYPE HTML", b"<HTML", b"<HEAD", b"<SCRIPT", b"<IFRAME", b"<H1", b"<DIV",
    b"<FONT", b"<TABLE", b"<A", b"<STYLE", b"<TITLE", b"<B", b"<BODY", b"<BR",
    b"<P", b"<!--",
)

_MAGIC = (
    (b"%PDF-", "application/pdf"),
    (b"%!PS-Adobe-", "application/postscript"),
    (b"\xfe\xff", "text/plain; charset=utf-16be"),
    (b"\xff\xfe", "text/plain; charset=utf-16le"),
    (b"\xef\xbb\xbf", "text/plain; charset=utf-8"),
    (b"GIF87a", "image/gif"),
    (b"GIF89a", "image/gif"),
    (b"\x89PNG\r\n\x1a\n", "image/png"),
    (b"\xff\xd8\xff", "image/jpeg"),
    (b"BM", "image/bmp"),
    (b"\x00\x00\x01\x00", "image/x-icon"),
    (b"wOFF", "font/woff"),
    (b"wOF2", "font/woff2"),
    (b"OggS\x00", "application/ogg"),
    (b"\x1aE\xdf\xa3", "video/webm"),
    (b"PK\x03\x04", "application/zip"),
    (b"\x1f\x8b\x08", "application/x-gzip"),
    (b"\x00asm", "application/wasm"),
)

_WHITESPACE = b"\t\n\x0c\r "
_BINARY_BYTES = frozenset(list(range(0x00, 0x09)) + [0x0B] + list(range(0x0E, 0x1B)) + list(range(0x1C, 0x20)))


def _matches_html_tag(data: bytes) -> bool:
    upper = data.upper()
    for tag in _HTML_TAGS:
        if upper.startswith(tag) and len(data) > len(tag) and data[len(tag)] in b" >":
            return True
    return False


def sniff_content_type(body: bytes) -> str:
    """Best guess at a MIME type from the leading bytes of a payload."""
    data = body[:_SNIFF_LEN]
    stripped = data.lstrip(_WHITESPACE)
    if _matches_html_tag(stripped):
        return HTML_CONTENT_TYPE
    if stripped.startswith(b"<?xml"):
        return "text/xml; charset=utf-8"
    for magic, content_type in _MAGIC:
        if data.startswith(magic):
            return content_type
    if data[:4] == b"RIFF" and data[8:12] == b"WEBP":
        return "image/webp"
    if data[:4] == b"RIFF" and data[8:12] == b"WAVE":
        return "audio/wave"
    if data[4:8] == b"ftyp" and data[8:11] in (b"mp4", b"iso", b"M4V", b"avc"):
        return "video/mp4"
    if any(b in _BINARY_BYTES for b in data):
        return "application/octet-stream"
    return "text/plain; charset=utf-8"


def rewrite_html(body: bytes, fragment: str) -> Rewrite:
    """Confirms HTML by its markers and injects the fragment before </body>.

    Bodies without either marker come back untouched with a sniffed type.
    Confirmed HTML without a closing body tag is served unchanged, still as HTML.
    """
    if not is_html_document(body):
        return Rewrite(body, sniff_content_type(body), False)
    new_body = inject_before_body_close(body, fragment.encode("utf-8"))
    return Rewrite(new_body, HTML_CONTENT_TYPE, new_body is not body)


def classify_and_inject(path: str, body: bytes, fragment: str) -> Optional[Rewrite]:
    """rewrite_html() for HTML-candidate paths, None for everything else."""
    if not is_html_candidate(path):
        return None
    return rewrite_html(body, fragment)
