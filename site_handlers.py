# site_handlers.py
# Scrolly contributors, Copyright(C)2026, MIT License.
# -*- coding: utf-8 -*-
"""
HTTP side of asset serving: a StaticFiles variant that reads through a
ByteStore, and the middleware that injects scripts into HTML responses.
"""
import html
import logging
import mimetypes
import posixpath
from typing import Callable, Optional
from urllib.parse import quote

from fastapi import FastAPI, Request
from fastapi.responses import RedirectResponse, Response
from fastapi.staticfiles import StaticFiles
from starlette.datastructures import URL
from starlette.exceptions import HTTPException
from starlette.websockets import WebSocketClose

from html_injection import is_html_candidate, rewrite_html, sniff_content_type
from overlay_store import ByteStore, normalize_path, read_asset

DEFAULT_FILE = "index.html"


def guess_content_type(path: str, body: bytes) -> str:
    """Content type from the extension, sniffed when the extension is unknown."""
    mime_type, _ = mimetypes.guess_type(path)
    if mime_type is None:
        return sniff_content_type(body)
    if mime_type.startswith("text/") or mime_type in ("application/javascript", "application/json"):
        return f"{mime_type}; charset=utf-8"
    return mime_type


def render_listing(names) -> bytes:
    lines = ['<!doctype html>', '<meta name="viewport" content="width=device-width">', "<pre>"]
    for name in names:
        lines.append(f'<a href="{quote(name)}">{html.escape(name)}</a>')
    lines.append("</pre>")
    return ("\n".join(lines) + "\n").encode("utf-8")


class OverlayStaticFiles(StaticFiles):
    """Static file handler backed by a ByteStore instead of a directory."""

    def __init__(self, store: ByteStore):
        super().__init__(directory=None, check_dir=False)
        self.store = store

    async def __call__(self, scope, receive, send):
        if scope["type"] != "http":
            # No control channel is served from the asset tree.
            await WebSocketClose()(scope, receive, send)
            return
        await super().__call__(scope, receive, send)

    def get_path(self, scope) -> str:
        return scope["path"]

    def file_response(self, path: str, body: bytes) -> Response:
        return Response(content=body, media_type=guess_content_type(path, body))

    async def get_response(self, path: str, scope) -> Response:
        if scope["method"] not in ("GET", "HEAD"):
            raise HTTPException(status_code=405)
        try:
            key = normalize_path(path)
            info = self.store.stat(key)
        except OSError:
            raise HTTPException(status_code=404)

        if not info.is_dir:
            try:
                return self.file_response(key, read_asset(self.store, key))
            except OSError:
                raise HTTPException(status_code=404)

        if not scope["path"].endswith("/"):
            url = URL(scope=scope)
            return RedirectResponse(url=url.replace(path=url.path + "/"))

        index_path = posixpath.join(key, DEFAULT_FILE) if key else DEFAULT_FILE
        try:
            return self.file_response(index_path, read_asset(self.store, index_path))
        except OSError:
            pass
        try:
            names = self.store.listdir(key)
        except OSError:
            raise HTTPException(status_code=404)
        listing = render_listing(names)
        return Response(content=listing, media_type=sniff_content_type(listing))


def inject_scripts_middleware(fragment: str) -> Callable:
    """Builds the http middleware that rewrites HTML responses.

    Paths that cannot be HTML go straight through. For the rest the whole
    response is buffered, since only the body tells whether it is HTML.
    """

    async def inject_scripts(request: Request, call_next):
        if request.method == "HEAD" or not is_html_candidate(request.url.path):
            return await call_next(request)

        response = await call_next(request)
        body = b"".join([chunk async for chunk in response.body_iterator])
        rewrite = rewrite_html(body, fragment)

        headers = {
            name: value
            for name, value in response.headers.items()
            if name != "content-type" and not (rewrite.injected and name == "content-length")
        }
        if rewrite.injected:
            logging.debug(f"Injected scripts into {request.url.path}")
        return Response(
            content=rewrite.body,
            status_code=response.status_code,
            headers=headers,
            media_type=rewrite.content_type,
        )

    return inject_scripts


def create_site_app(store: ByteStore, fragment: Optional[str]) -> FastAPI:
    """Asset tree served through the overlay, with injection wrapped around it.

    fragment=None serves the assets without touching HTML.
    """
    site_app = FastAPI(docs_url=None, redoc_url=None, openapi_url=None)
    if fragment is not None:
        site_app.middleware("http")(inject_scripts_middleware(fragment))
    site_app.mount("/", OverlayStaticFiles(store), name="static")
    return site_app
