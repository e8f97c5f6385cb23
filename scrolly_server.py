#!/usr/bin/env python3
# scrolly_server.py
# Scrolly contributors, Copyright(C)2026, MIT License.
# -*- coding: utf-8 -*-
"""
Serves a bundled scrollytelling presentation in the local web browser.

Files come from two folders next to this script: 'site' (the presentation)
overrides 'lib' (shared libraries such as hotkeys.js and js-yaml.min.js).
HTML pages get the hotkey scripts injected before </body>.

Presentation mode (default) opens the browser and exits once the tab is
closed. Server mode (--server) keeps running until Ctrl+C.
"""
VERSION = "1.2.0"
# the connection URL is shown when the script runs successfully.

# --- EDITABLE SERVER CONFIGURATION ---
class ServerConfig:
    def __init__(self):
        # First TCP port to try; the next free one within PORT_WINDOW is used.
        self.DEFAULT_PORT: int = 8080
        # How many consecutive ports to probe before giving up.
        self.PORT_WINDOW: int = 100
        # Interface to listen on ("0.0.0.0" = all interfaces).
        self.HOST: str = "0.0.0.0"
        # Presentation files. Overrides anything of the same name in LIB_FOLDER.
        self.SITE_FOLDER: str = "site"
        # Bundled libraries and default settings.
        self.LIB_FOLDER: str = "lib"
        # Optional delay (seconds) before opening the browser in presentation mode.
        self.AUTO_OPEN_DELAY_SECONDS: float = 0.5
        # Delay between the browser tab closing and the process exiting.
        self.CHANNEL_CLOSED_GRACE_SECONDS: float = 0.5
        # Delay between a /shutdown request and the process exiting.
        self.SHUTDOWN_GRACE_SECONDS: float = 0.2
        # Application version number. Note: Leave this as-is, as it reflects the version above.
        self.VERSION: str = VERSION

# --- END EDITABLE SERVER CONFIGURATION ---


import argparse
import asyncio
import logging
import os
import socket
import sys
import webbrowser
from typing import List, Optional

import uvicorn
from fastapi import FastAPI, Request, WebSocket
from fastapi.responses import PlainTextResponse, Response

from html_injection import presentation_fragment
from lifecycle import LifecycleController
from overlay_store import ByteStore, OverlayStore, StoreMountError, load_bundle
from port_allocator import NoAvailablePortError, find_available_port
from site_config import load_site_config
from site_handlers import create_site_app

try:
    import netifaces
except ImportError:
    netifaces = None  # LAN address falls back to a socket lookup

script_dir = os.path.dirname(os.path.abspath(__file__))


def load_stores(config: ServerConfig, base_dir: str = script_dir) -> OverlayStore:
    """Mounts site/ over lib/. Raises StoreMountError if either is missing."""
    site_store = load_bundle(os.path.join(base_dir, config.SITE_FOLDER))
    lib_store = load_bundle(os.path.join(base_dir, config.LIB_FOLDER))
    logging.info(f"Loaded {len(site_store)} site files and {len(lib_store)} library files")
    return OverlayStore(site_store, lib_store)


def create_app(
    store: ByteStore,
    server_mode: bool = False,
    controller: Optional[LifecycleController] = None,
    config: Optional[ServerConfig] = None,
) -> FastAPI:
    """Front door: lifecycle endpoints (presentation mode only) plus the asset tree."""
    config = config or ServerConfig()
    app = FastAPI(docs_url=None, redoc_url=None, openapi_url=None)
    app.state.server_mode = server_mode
    app.state.controller = None

    if not server_mode:
        controller = controller or LifecycleController(
            channel_grace=config.CHANNEL_CLOSED_GRACE_SECONDS,
            shutdown_grace=config.SHUTDOWN_GRACE_SECONDS,
        )
        app.state.controller = controller

        @app.websocket("/ws")
        async def control_channel(websocket: WebSocket):
            try:
                await websocket.accept()
            except Exception as e:
                logging.warning(f"WebSocket upgrade error: {e}")
                return
            channel_id = controller.open_channel()
            if channel_id is None:
                await websocket.close(code=1001)
                return
            logging.info("Browser connected")
            try:
                # Any message is a heartbeat; only the read failing matters.
                while True:
                    message = await websocket.receive()
                    if message["type"] == "websocket.disconnect":
                        break
            except Exception as e:
                logging.debug(f"Control channel read failed: {e}")
            finally:
                controller.close_channel(channel_id)

        @app.get("/ws")
        async def control_channel_without_upgrade(request: Request):
            logging.warning(f"WebSocket upgrade error: {request.client.host if request.client else '?'} sent a plain request to /ws")
            return PlainTextResponse("Bad Request", status_code=400)

        @app.api_route("/shutdown", methods=["GET", "POST"])
        async def shutdown():
            controller.request_shutdown()
            return Response(status_code=200)

    app.mount("/", create_site_app(store, presentation_fragment(server_mode)), name="site")
    return app


def get_lan_ip():
    """Gets the LAN IP address using netifaces or falls back to socket."""
    if netifaces:
        try:
            for interface in netifaces.interfaces():
                addresses = netifaces.ifaddresses(interface)
                for addr_info in addresses.get(netifaces.AF_INET, []):
                    ip = addr_info['addr']
                    if not ip.startswith('127.'):
                        return ip
        except Exception as e:
            logging.warning(f"Error using netifaces: {e}")

    try:
        with socket.socket(socket.AF_INET, socket.SOCK_DGRAM) as s:
            # No packet is sent; this only picks the outbound interface.
            s.connect(("8.8.8.8", 80))
            return s.getsockname()[0]
    except OSError as e:
        logging.warning(f"Error getting IP: {e}")
        return "127.0.0.1"


def open_browser(url: str) -> None:
    try:
        logging.info(f"[server] Auto-opening {url}")
        webbrowser.open(url)
    except Exception as e:
        logging.warning(f"Auto-open failed: {e}")


def print_routes(app: FastAPI) -> None:
    print("=== Routes ===")
    for route in app.routes:
        if hasattr(route, "endpoint"):
            print(f"{route.path:<20} → {route.endpoint.__name__}")
        elif hasattr(route, "app"):
            print(f"{route.path or '/':<20} ↪ mounted app: site assets")


async def run_server(app: FastAPI, config: ServerConfig, port: int, server_mode: bool, title: str):
    url = f"http://localhost:{port}"

    if server_mode:
        print(f"\n{title}\n Server running at {url} (port {port})")
        if config.HOST == "0.0.0.0":
            print(f" LAN: http://{get_lan_ip()}:{port}")
        print(f" (ver {config.VERSION})")
        print("Press Ctrl+C to quit")
    else:
        print(f"\nOpening {title} at {url} (port {port})\n (ver {config.VERSION})")
        print("Close the browser when done, or press Ctrl+C to quit")
    print_routes(app)

    server = uvicorn.Server(uvicorn.Config(app, host=config.HOST, port=port, lifespan="off", log_level="warning"))

    open_task = None
    if not server_mode:
        async def _delayed_open():
            await asyncio.sleep(config.AUTO_OPEN_DELAY_SECONDS)
            # Run sync webbrowser.open without blocking event loop
            loop = asyncio.get_running_loop()
            await loop.run_in_executor(None, open_browser, url)
        # held until serve() returns so the task is not garbage-collected
        open_task = asyncio.create_task(_delayed_open())

    try:
        await server.serve()
    finally:
        if open_task is not None and not open_task.done():
            open_task.cancel()


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Serve the bundled presentation in a web browser.")
    parser.add_argument(
        "--server",
        action="store_true",
        help="Run in server mode (no auto-open browser, no auto-shutdown).",
    )
    return parser.parse_args(argv)


def main(argv: Optional[List[str]] = None) -> int:
    logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(levelname)s - %(message)s')
    args = parse_args(argv)
    config = ServerConfig()

    try:
        store = load_stores(config)
        port = find_available_port(config.DEFAULT_PORT, config.PORT_WINDOW)
    except (StoreMountError, NoAvailablePortError) as e:
        logging.critical(f"FATAL ERROR: {e}")
        return 1

    site_config = load_site_config(store)
    app = create_app(store, server_mode=args.server, config=config)

    try:
        asyncio.run(run_server(app, config, port, args.server, site_config.title))
    except KeyboardInterrupt:
        logging.info("Server manually stopped via Ctrl+C. Exiting gracefully.")
    except Exception as e:
        logging.critical(f"An unexpected error occurred during server runtime: {e}")
        return 1
    finally:
        logging.info("Application finished.")
    return 0


if __name__ == "__main__":
    sys.exit(main())
