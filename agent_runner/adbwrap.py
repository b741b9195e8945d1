"""adbwrap.py - Thin wrapper around the Android Debug Bridge (adb) CLI."""

import os
import shutil
import subprocess
import sys

DUMP_PATH = "/sdcard/window_dump.xml"

_adb_path: str | None = None


def _log(msg: str) -> None:
    print(f"[adb] {msg}", file=sys.stderr)


def _find_adb() -> str | None:
    """Find the adb binary: $ADB, then the Android SDK, then PATH."""
    global _adb_path
    if _adb_path is not None:
        return _adb_path if _adb_path else None

    env_adb = os.getenv("ADB")
    if env_adb and os.path.isfile(env_adb):
        _adb_path = env_adb
        _log(f"adb from $ADB: {_adb_path}")
        return _adb_path

    sdk_root = os.getenv("ANDROID_HOME") or os.getenv("ANDROID_SDK_ROOT")
    if sdk_root:
        sdk_adb = os.path.join(sdk_root, "platform-tools", "adb")
        if os.path.isfile(sdk_adb) and os.access(sdk_adb, os.X_OK):
            _adb_path = sdk_adb
            _log(f"adb found in SDK: {_adb_path}")
            return _adb_path

    system_adb = shutil.which("adb")
    if system_adb:
        _adb_path = system_adb
        return _adb_path

    _adb_path = ""  # cached miss
    _log("adb not found on PATH")
    return None


def _base_cmd(serial: str | None) -> list[str]:
    cmd = [_find_adb() or "adb"]
    if serial:
        cmd += ["-s", serial]
    return cmd


def _run(cmd: list[str], timeout: int = 30) -> tuple[str, str, int]:
    """Run a subprocess command and return (stdout, stderr, returncode)."""
    _log(f"Running: {' '.join(cmd)}")
    try:
        result = subprocess.run(cmd, capture_output=True, text=True, timeout=timeout)
    except FileNotFoundError as exc:
        return "", str(exc), 127
    except subprocess.TimeoutExpired:
        return "", f"timed out after {timeout}s", 124
    if result.returncode != 0:
        _log(f"stderr: {result.stderr.strip()}")
    return result.stdout, result.stderr, result.returncode


def _run_binary(cmd: list[str], timeout: int = 30) -> bytes | None:
    """Run a command whose stdout is binary (e.g. screencap). None on failure."""
    _log(f"Running: {' '.join(cmd)}")
    try:
        result = subprocess.run(cmd, capture_output=True, timeout=timeout)
    except (FileNotFoundError, subprocess.TimeoutExpired) as exc:
        _log(f"binary command failed: {exc}")
        return None
    if result.returncode != 0 or not result.stdout:
        _log(f"stderr: {result.stderr.decode(errors='replace').strip()}")
        return None
    return result.stdout


def shell(serial: str | None, *args: str) -> tuple[str, str, int]:
    return _run(_base_cmd(serial) + ["shell", *args])


def get_state(serial: str | None) -> str:
    """Return adb's device state ("device", "offline", ...) or "" if unreachable."""
    stdout, _, rc = _run(_base_cmd(serial) + ["get-state"], timeout=10)
    return stdout.strip() if rc == 0 else ""


def dump_hierarchy(serial: str | None) -> str:
    """Dump the window hierarchy via uiautomator. Returns raw XML or ""."""
    stdout, stderr, rc = shell(serial, "uiautomator", "dump", DUMP_PATH)
    if rc != 0 or "ERROR" in stdout:
        _log(f"uiautomator dump failed: {(stderr or stdout).strip()}")
        return ""
    stdout, stderr, rc = _run(_base_cmd(serial) + ["exec-out", "cat", DUMP_PATH])
    if rc != 0:
        _log(f"could not read {DUMP_PATH}: {stderr.strip()}")
        return ""
    _log(f"Got hierarchy ({len(stdout)} bytes)")
    return stdout


def screencap(serial: str | None) -> bytes | None:
    """Capture the screen as PNG bytes."""
    return _run_binary(_base_cmd(serial) + ["exec-out", "screencap", "-p"])


def tap(serial: str | None, x: int, y: int) -> bool:
    _, _, rc = shell(serial, "input", "tap", str(x), str(y))
    if rc == 0:
        _log(f"Tapped ({x}, {y})")
    return rc == 0


def swipe(serial: str | None, x1: int, y1: int, x2: int, y2: int, duration_ms: int = 400) -> bool:
    _, _, rc = shell(serial, "input", "swipe", str(x1), str(y1), str(x2), str(y2), str(duration_ms))
    return rc == 0


def key_event(serial: str | None, *keycodes: str) -> bool:
    """Send one or more key events, e.g. KEYCODE_BACK."""
    _, _, rc = shell(serial, "input", "keyevent", *keycodes)
    return rc == 0


_SHELL_SPECIALS = set("()<>|;&*\\~\"'`$!?#[]{}")


def escape_input_text(text: str) -> str:
    """Escape text for `input text`: spaces become %s, shell specials get a backslash."""
    out = []
    for ch in text:
        if ch == " ":
            out.append("%s")
        elif ch in _SHELL_SPECIALS:
            out.append("\\" + ch)
        else:
            out.append(ch)
    return "".join(out)


def input_text(serial: str | None, text: str) -> bool:
    if not text:
        return True
    _, _, rc = shell(serial, "input", "text", escape_input_text(text))
    if rc == 0:
        _log(f"Typed text ({len(text)} chars)")
    return rc == 0


def is_installed(serial: str | None, package: str) -> bool:
    stdout, _, rc = shell(serial, "pm", "path", package)
    return rc == 0 and stdout.strip().startswith("package:")


def launch_app(serial: str | None, package: str) -> bool:
    """Launch an app's launcher activity via monkey."""
    stdout, stderr, rc = shell(
        serial, "monkey", "-p", package, "-c", "android.intent.category.LAUNCHER", "1",
    )
    if rc != 0 or "No activities found" in stdout or "monkey aborted" in stdout:
        _log(f"Failed to launch {package}: {(stderr or stdout).strip()}")
        return False
    _log(f"Launched {package}")
    return True


def screen_size(serial: str | None) -> tuple[int, int] | None:
    """Parse `wm size`, preferring an override size over the physical one."""
    stdout, _, rc = shell(serial, "wm", "size")
    if rc != 0:
        return None
    size = None
    for line in stdout.splitlines():
        if ":" not in line:
            continue
        label, _, value = line.partition(":")
        try:
            w, h = (int(part) for part in value.strip().split("x"))
        except ValueError:
            continue
        if "Override" in label or size is None:
            size = (w, h)
    return size
