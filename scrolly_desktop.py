#!/usr/bin/env python3
# scrolly_desktop.py
# Scrolly contributors, Copyright(C)2026, MIT License.
# -*- coding: utf-8 -*-
"""
Shows the bundled presentation in a native window (pywebview) instead of the
web browser.

The assets are served by a loopback-only server that reads HTML straight
from the site/lib overlay and injects the hotkey scripts plus a bridge that
opens external links in the system browser. The window owns the process
lifetime, so there is no heartbeat or /shutdown here.

Requires: pip install "scrolly[desktop]"
"""
import logging
import sys
import threading
import time
import webbrowser

import uvicorn
from fastapi import FastAPI, Request
from fastapi.responses import PlainTextResponse, Response

from html_injection import desktop_fragment, is_html_candidate, rewrite_html
from overlay_store import ByteStore, StoreMountError, read_asset
from port_allocator import NoAvailablePortError, find_available_port
from scrolly_server import ServerConfig, load_stores
from site_config import load_site_config
from site_handlers import DEFAULT_FILE, OverlayStaticFiles

DESKTOP_HOST = "127.0.0.1"


class DesktopApi:
    """Exposed to page scripts as window.pywebview.api."""

    def open_external(self, url: str) -> None:
        logging.info(f"Opening external link {url}")
        webbrowser.open(url)


def serve_desktop_asset(store: ByteStore, path: str, fragment: str) -> Response:
    """Reads an HTML-candidate path from the store and injects the fragment."""
    if path in ("/", f"/{DEFAULT_FILE}"):
        file_path = DEFAULT_FILE
    else:
        file_path = path.lstrip("/")

    try:
        body = read_asset(store, file_path)
    except (FileNotFoundError, IsADirectoryError, NotADirectoryError):
        return PlainTextResponse("File not found", status_code=404)
    except OSError as e:
        logging.error(f"Error reading {file_path}: {e}")
        return PlainTextResponse("Error reading file", status_code=500)

    rewrite = rewrite_html(body, fragment)
    return Response(content=rewrite.body, media_type=rewrite.content_type)


def create_desktop_app(store: ByteStore) -> FastAPI:
    app = FastAPI(docs_url=None, redoc_url=None, openapi_url=None)
    static_files = OverlayStaticFiles(store)
    fragment = desktop_fragment()

    @app.api_route("/{asset_path:path}", methods=["GET", "HEAD"])
    async def asset(request: Request, asset_path: str):
        path = request.url.path
        if is_html_candidate(path):
            return serve_desktop_asset(store, path, fragment)
        return await static_files.get_response(path, request.scope)

    return app


STARTUP_TIMEOUT_SECONDS = 5


def start_asset_server(app: FastAPI, port: int) -> uvicorn.Server:
    """Runs uvicorn on a daemon thread; it dies with the window.

    Check server.started afterwards: it stays False if uvicorn did not come up
    within STARTUP_TIMEOUT_SECONDS.
    """
    server = uvicorn.Server(uvicorn.Config(app, host=DESKTOP_HOST, port=port, lifespan="off", log_level="warning"))
    thread = threading.Thread(target=server.run, daemon=True)
    thread.start()
    deadline = time.monotonic() + STARTUP_TIMEOUT_SECONDS
    while not server.started and time.monotonic() < deadline:
        time.sleep(0.05)
    return server


def main() -> int:
    logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(levelname)s - %(message)s')
    config = ServerConfig()

    try:
        store = load_stores(config)
        port = find_available_port(config.DEFAULT_PORT, config.PORT_WINDOW, host=DESKTOP_HOST)
    except (StoreMountError, NoAvailablePortError) as e:
        logging.critical(f"FATAL ERROR: {e}")
        return 1

    site_config = load_site_config(store)
    server = start_asset_server(create_desktop_app(store), port)
    if not server.started:
        logging.critical(f"FATAL ERROR: asset server did not start on port {port}")
        return 1

    import webview  # desktop extra; the browser server does not need it

    webview.create_window(
        site_config.title,
        url=f"http://{DESKTOP_HOST}:{port}/",
        width=site_config.window_width,
        height=site_config.window_height,
        js_api=DesktopApi(),
    )
    logging.info(f"{site_config.app_name} {site_config.app_version} window open (assets on port {port})")
    webview.start()
    logging.info("Window closed. Exiting.")
    return 0


if __name__ == "__main__":
    sys.exit(main())
