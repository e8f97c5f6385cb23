# site_config.py
# Scrolly contributors, Copyright(C)2026, MIT License.
# -*- coding: utf-8 -*-
"""
Presentation settings read from the bundles.

A site may ship config.yaml; otherwise lib/config.default.yaml is used, and
if neither is readable the defaults below apply. Keys missing from the file
keep their defaults.

    title: My Talk
    window:
      width: 1280
      height: 720
    app:
      name: Scrolly
      version: 1.0.0
"""
import logging
from typing import Any, Dict

import yaml

from overlay_store import ByteStore, read_asset

CONFIG_FILES = ("config.yaml", "config.default.yaml")


class SiteConfig:
    def __init__(self):
        # Window title (desktop) and banner title (browser).
        self.title: str = "Scrolly Presentation"
        self.window_width: int = 1200
        self.window_height: int = 800
        self.app_name: str = "Scrolly"
        self.app_version: str = "1.0.0"

    def update(self, data: Dict[str, Any]) -> None:
        window = data.get("window") or {}
        app = data.get("app") or {}
        self.title = str(data.get("title", self.title))
        self.window_width = int(window.get("width", self.window_width))
        self.window_height = int(window.get("height", self.window_height))
        self.app_name = str(app.get("name", self.app_name))
        self.app_version = str(app.get("version", self.app_version))


def load_site_config(store: ByteStore) -> SiteConfig:
    config = SiteConfig()
    for name in CONFIG_FILES:
        try:
            raw = read_asset(store, name)
        except OSError:
            continue
        try:
            data = yaml.safe_load(raw) or {}
            if not isinstance(data, dict):
                raise ValueError(f"expected a mapping, got {type(data).__name__}")
            config.update(data)
        except (yaml.YAMLError, ValueError, TypeError, AttributeError) as e:
            logging.warning(f"Error parsing {name}: {e}, using defaults")
            return SiteConfig()
        logging.info(f"Loaded settings from {name}")
        return config
    logging.info("No config file found, using defaults")
    return config
