import asyncio
import logging
import time
import webbrowser

import pytest
from fastapi.testclient import TestClient
from starlette.websockets import WebSocketDisconnect

import scrolly_server
from conftest import INDEX_HTML
from lifecycle import LifecycleController, LifecycleState
from overlay_store import StoreMountError
from port_allocator import NoAvailablePortError
from test_lifecycle import ExitRecorder


def _presentation(store, grace: float = 0.0):
    recorder = ExitRecorder()
    controller = LifecycleController(channel_grace=grace, shutdown_grace=grace, exit_func=recorder)
    app = scrolly_server.create_app(store, server_mode=False, controller=controller)
    return TestClient(app), controller, recorder


def _wait_for_state(controller, state, timeout: float = 2.0) -> bool:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if controller.state is state:
            return True
        time.sleep(0.01)
    return False


def test_presentation_page_gets_heartbeat_and_hotkeys(store) -> None:
    client, _, _ = _presentation(store)
    body = client.get("/").content

    assert b"new WebSocket(wsUrl)" in body
    assert b'<script src="/hotkeys.js"></script>\n</body>' in body
    assert body.replace(body[body.index(b"\n<script>"):body.index(b"</body>")], b"") == INDEX_HTML


def test_server_mode_page_has_no_heartbeat(store) -> None:
    client = TestClient(scrolly_server.create_app(store, server_mode=True))
    body = client.get("/").content

    assert b"WebSocket" not in body
    assert b'<script src="/js-yaml.min.js"></script>' in body


def test_closing_control_channel_exits(store) -> None:
    client, controller, recorder = _presentation(store)

    with client.websocket_connect("/ws") as ws:
        assert _wait_for_state(controller, LifecycleState.CONNECTED)
        ws.send_text("ping")
        ws.send_text("ping")
        assert controller.state is LifecycleState.CONNECTED
        assert not recorder.called.is_set()

    assert recorder.called.wait(2)
    assert controller.state is LifecycleState.TERMINATING


def test_shutdown_endpoint_responds_then_exits(store) -> None:
    client, controller, recorder = _presentation(store, grace=0.2)

    response = client.post("/shutdown")

    assert response.status_code == 200
    assert controller.state is LifecycleState.TERMINATING
    assert not recorder.called.is_set()
    assert recorder.called.wait(2)
    assert recorder.calls == 1


def test_shutdown_accepts_get(store) -> None:
    client, controller, _ = _presentation(store, grace=5)
    assert client.get("/shutdown").status_code == 200
    assert controller.state is LifecycleState.TERMINATING


def test_plain_request_to_ws_is_rejected(store) -> None:
    client, controller, recorder = _presentation(store)

    response = client.get("/ws")

    assert response.status_code == 400
    assert controller.state is LifecycleState.AWAITING_CONNECTION
    assert not recorder.called.is_set()


def test_server_mode_has_no_lifecycle_endpoints(store) -> None:
    app = scrolly_server.create_app(store, server_mode=True)
    client = TestClient(app)

    assert app.state.controller is None
    assert client.post("/shutdown").status_code == 405
    assert client.get("/shutdown").status_code == 404
    with pytest.raises(WebSocketDisconnect):
        with client.websocket_connect("/ws"):
            pass
    # Still serving afterwards
    assert client.get("/index.html").status_code == 200


def test_load_stores_overlays_site_on_lib(tmp_path) -> None:
    (tmp_path / "site").mkdir()
    (tmp_path / "lib").mkdir()
    (tmp_path / "site" / "hotkeys.js").write_bytes(b"site")
    (tmp_path / "lib" / "hotkeys.js").write_bytes(b"lib")
    (tmp_path / "lib" / "js-yaml.min.js").write_bytes(b"yaml")

    store = scrolly_server.load_stores(scrolly_server.ServerConfig(), base_dir=str(tmp_path))

    assert store.open("hotkeys.js").read() == b"site"
    assert store.open("js-yaml.min.js").read() == b"yaml"


def test_load_stores_requires_both_bundles(tmp_path) -> None:
    (tmp_path / "site").mkdir()
    with pytest.raises(StoreMountError):
        scrolly_server.load_stores(scrolly_server.ServerConfig(), base_dir=str(tmp_path))


def test_main_exits_nonzero_when_bundles_missing(monkeypatch) -> None:
    def fail(config):
        raise StoreMountError("Bundle folder not found: site")

    monkeypatch.setattr(scrolly_server, "load_stores", fail)
    assert scrolly_server.main([]) == 1


def test_main_exits_nonzero_without_free_port(monkeypatch, store) -> None:
    def no_port(start, window):
        raise NoAvailablePortError("No available ports in range 8080-8179")

    monkeypatch.setattr(scrolly_server, "load_stores", lambda config: store)
    monkeypatch.setattr(scrolly_server, "find_available_port", no_port)
    assert scrolly_server.main(["--server"]) == 1


def test_main_runs_server_in_requested_mode(monkeypatch, store) -> None:
    seen = {}

    async def fake_run_server(app, config, port, server_mode, title):
        seen.update(port=port, server_mode=server_mode, title=title, controller=app.state.controller)

    monkeypatch.setattr(scrolly_server, "load_stores", lambda config: store)
    monkeypatch.setattr(scrolly_server, "find_available_port", lambda start, window: 8085)
    monkeypatch.setattr(scrolly_server, "run_server", fake_run_server)

    assert scrolly_server.main(["--server"]) == 0
    assert seen == {"port": 8085, "server_mode": True, "title": "Library Default", "controller": None}


def test_parse_args_defaults_to_presentation() -> None:
    assert scrolly_server.parse_args([]).server is False
    assert scrolly_server.parse_args(["--server"]).server is True


def _quick_config() -> scrolly_server.ServerConfig:
    config = scrolly_server.ServerConfig()
    config.AUTO_OPEN_DELAY_SECONDS = 0
    return config


def _patch_serve(monkeypatch, seconds: float = 0.3) -> None:
    async def fake_serve(self, sockets=None):
        await asyncio.sleep(seconds)

    monkeypatch.setattr(scrolly_server.uvicorn.Server, "serve", fake_serve)


def test_presentation_mode_opens_browser_once(monkeypatch, store) -> None:
    opened = []
    _patch_serve(monkeypatch)
    monkeypatch.setattr(scrolly_server.webbrowser, "open", opened.append)
    app = scrolly_server.create_app(store, server_mode=False)

    asyncio.run(scrolly_server.run_server(app, _quick_config(), 8085, False, "Deck"))

    assert opened == ["http://localhost:8085"]


def test_server_mode_never_opens_browser_and_prints_lan(monkeypatch, capsys, store) -> None:
    opened = []
    _patch_serve(monkeypatch, seconds=0.1)
    monkeypatch.setattr(scrolly_server.webbrowser, "open", opened.append)
    monkeypatch.setattr(scrolly_server, "get_lan_ip", lambda: "10.0.0.5")
    app = scrolly_server.create_app(store, server_mode=True)

    asyncio.run(scrolly_server.run_server(app, _quick_config(), 8085, True, "Deck"))

    assert opened == []
    out = capsys.readouterr().out
    assert "Server running at http://localhost:8085" in out
    assert "LAN: http://10.0.0.5:8085" in out


def test_pending_browser_open_is_cancelled_when_server_stops(monkeypatch, store) -> None:
    opened = []
    _patch_serve(monkeypatch, seconds=0)
    monkeypatch.setattr(scrolly_server.webbrowser, "open", opened.append)
    config = _quick_config()
    config.AUTO_OPEN_DELAY_SECONDS = 5

    asyncio.run(scrolly_server.run_server(scrolly_server.create_app(store), config, 8085, False, "Deck"))

    assert opened == []


def test_open_browser_failure_is_logged(monkeypatch, caplog) -> None:
    def broken_open(url):
        raise webbrowser.Error("no runnable browser")

    monkeypatch.setattr(scrolly_server.webbrowser, "open", broken_open)

    with caplog.at_level(logging.WARNING):
        scrolly_server.open_browser("http://localhost:8080")

    assert "Auto-open failed: no runnable browser" in caplog.text


def test_lan_ip_falls_back_to_loopback(monkeypatch) -> None:
    def no_network(*args, **kwargs):
        raise OSError("network unreachable")

    monkeypatch.setattr(scrolly_server, "netifaces", None)
    monkeypatch.setattr(scrolly_server.socket, "socket", no_network)

    assert scrolly_server.get_lan_ip() == "127.0.0.1"


def test_print_routes_lists_lifecycle_endpoints(capsys, store) -> None:
    scrolly_server.print_routes(scrolly_server.create_app(store))
    out = capsys.readouterr().out

    assert "/ws" in out
    assert "/shutdown" in out
    assert "mounted app: site assets" in out
