"""Save device screenshots and serialized trees under _artifacts/."""

import json
import os
import re
import sys
from datetime import datetime

_PROJECT_ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))


def _log(msg: str) -> None:
    print(f"[screenshot] {msg}", file=sys.stderr)


def _resolve_output_dir(output_dir: str) -> str:
    return os.path.join(_PROJECT_ROOT, output_dir)


def _timestamp() -> str:
    return datetime.now().strftime("%Y%m%d_%H%M%S")


def _sanitize_label(label: str) -> str:
    return re.sub(r"[^a-zA-Z0-9_-]", "_", label)


def save_png(png: bytes, label: str = "", output_dir: str = "_artifacts/") -> str | None:
    """Write PNG bytes to disk.

    Returns the absolute path to the saved file, or None on failure.
    """
    resolved_dir = _resolve_output_dir(output_dir)
    os.makedirs(resolved_dir, exist_ok=True)

    name = f"screenshot_{_sanitize_label(label)}_{_timestamp()}" if label else f"screenshot_{_timestamp()}"
    dest = os.path.join(resolved_dir, f"{name}.png")
    try:
        with open(dest, "wb") as f:
            f.write(png)
    except OSError as exc:
        _log(f"save failed: {exc}")
        return None
    _log(f"saved {dest}")
    return dest


def capture(host, label: str = "", output_dir: str = "_artifacts/") -> str | None:
    """Grab a screenshot from ``host`` and save it."""
    png = host.capture_screenshot()
    if png is None:
        _log("capture failed: no image from device")
        return None
    return save_png(png, label, output_dir)


def save_tree_json(tree: str, label: str, output_dir: str = "_artifacts/") -> str | None:
    """Save a serialized tree next to the screenshots, pretty-printed."""
    resolved_dir = _resolve_output_dir(output_dir)
    os.makedirs(resolved_dir, exist_ok=True)

    dest = os.path.join(resolved_dir, f"tree_{_sanitize_label(label)}_{_timestamp()}.json")
    try:
        records = json.loads(tree)
        with open(dest, "w", encoding="utf-8") as f:
            json.dump(records, f, indent=1, ensure_ascii=False)
    except (OSError, ValueError) as exc:
        _log(f"tree save failed: {exc}")
        return None
    _log(f"saved tree {dest}")
    return dest
