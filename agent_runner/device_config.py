"""device_config.py - Runtime display geometry detection for Android devices."""

import sys
from dataclasses import dataclass

from agent_runner import adbwrap

DEFAULT_WIDTH = 1080
DEFAULT_HEIGHT = 2280

_cache: dict[str, "DeviceConfig"] = {}


def _log(msg: str) -> None:
    print(f"[device_config] {msg}", file=sys.stderr)


@dataclass(frozen=True)
class DeviceConfig:
    """Display geometry in physical pixels."""

    width: int
    height: int

    @staticmethod
    def from_dimensions(width: int, height: int) -> "DeviceConfig":
        return DeviceConfig(width=width, height=height)


def detect(serial: str | None) -> DeviceConfig:
    """Detect the display size for a device. Caches per serial."""
    key = serial or ""
    if key in _cache:
        return _cache[key]

    size = adbwrap.screen_size(serial)
    if size:
        w, h = size
        _log(f"Detected {w}x{h} (wm size)")
        cfg = DeviceConfig.from_dimensions(w, h)
    else:
        _log(f"WARNING: Could not detect screen size, using {DEFAULT_WIDTH}x{DEFAULT_HEIGHT} default")
        cfg = DeviceConfig.from_dimensions(DEFAULT_WIDTH, DEFAULT_HEIGHT)
    _cache[key] = cfg
    return cfg
