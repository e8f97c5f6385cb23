# port_allocator.py
# Scrolly contributors, Copyright(C)2026, MIT License.
# -*- coding: utf-8 -*-
"""Picks the first bindable TCP port at or above a starting port."""
import logging
import socket

PORT_WINDOW = 100


class NoAvailablePortError(RuntimeError):
    """Every port in the probe window is taken."""


def _port_is_free(host: str, port: int) -> bool:
    try:
        with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
            s.bind((host, port))
            s.listen(1)
        return True
    except OSError:
        return False


def find_available_port(start_port: int, window: int = PORT_WINDOW, host: str = "") -> int:
    """Probes start_port .. start_port + window - 1 in order.

    Each probe socket is closed straight away; the server binds its own
    listener afterwards.
    """
    for port in range(start_port, start_port + window):
        if _port_is_free(host, port):
            if port != start_port:
                logging.info(f"Port {start_port} busy, using {port}")
            return port
    raise NoAvailablePortError(f"No available ports in range {start_port}-{start_port + window - 1}")
