import pytest

from overlay_store import MemoryStore, OverlayStore

INDEX_HTML = b"<!DOCTYPE html>\n<html>\n<body>\n<h1>Deck</h1>\n</body>\n</html>\n"
# PNG header followed by bytes that look like HTML markers
PNG_BYTES = b"\x89PNG\r\n\x1a\n<html></body>"


@pytest.fixture
def store() -> OverlayStore:
    site = MemoryStore(
        {
            "index.html": INDEX_HTML,
            "hotkeys.js": b"// site hotkeys",
            "logo.png": PNG_BYTES,
            "notes": b"plain notes, no markup",
            "plain.html": b"just text in an html file",
            "fragment.htm": b"<html><p>no closing body",
            "docs/a.txt": b"a",
            "docs/b.txt": b"b",
            "deck/index.html": b"<html><body>deck</body></html>",
        }
    )
    lib = MemoryStore(
        {
            "hotkeys.js": b"// lib hotkeys",
            "js-yaml.min.js": b"// js-yaml",
            "config.default.yaml": b"title: Library Default\n",
        }
    )
    return OverlayStore(site, lib)
