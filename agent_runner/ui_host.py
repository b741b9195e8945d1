"""ui_host.py - The live handle to one device's screen.

Whoever builds the executor and the loop constructs a UiHost and passes it
in; nothing looks the device up globally. Every query re-captures the
snapshot, since a previously serialized tree may already be stale.
"""

import sys

from agent_runner import adbwrap, navigator, screen_mapper, tree_serializer
from agent_runner.device_config import DeviceConfig, detect
from agent_runner.screen_mapper import UiNode


def _log(msg: str) -> None:
    print(f"[host] {msg}", file=sys.stderr)


class UiHost:
    """UI Host backed by adb + uiautomator for a single device."""

    def __init__(self, serial: str | None = None, config: DeviceConfig | None = None):
        self.serial = serial
        self._config = config

    @property
    def config(self) -> DeviceConfig:
        if self._config is None:
            self._config = detect(self.serial)
        return self._config

    def is_available(self) -> bool:
        return adbwrap.get_state(self.serial) == "device"

    # -- capture ---------------------------------------------------------

    def capture_snapshot(self) -> UiNode | None:
        raw = adbwrap.dump_hierarchy(self.serial)
        if not raw:
            return None
        return screen_mapper.parse_tree(raw)

    def capture_screenshot(self) -> bytes | None:
        return adbwrap.screencap(self.serial)

    def serialize_tree(self, root: UiNode | None = None) -> str:
        if root is None:
            root = self.capture_snapshot()
        return tree_serializer.serialize(root, screen_height=self.config.height)

    # -- queries over a fresh snapshot -----------------------------------

    def find_by_text(self, text: str, exact: bool = False) -> UiNode | None:
        return navigator.find_by_text(self.capture_snapshot(), text, exact)

    def find_clickable_by_text(self, text: str) -> UiNode | None:
        return navigator.find_clickable_by_text(self.capture_snapshot(), text)

    def find_editable(self, hint: str | None = None) -> UiNode | None:
        return navigator.find_editable(self.capture_snapshot(), hint)

    def find_by_list_index(self, category: str, index: int) -> UiNode | None:
        return navigator.find_by_list_index(self.capture_snapshot(), category, index)

    def find_scrollable(self) -> UiNode | None:
        return navigator.find_scrollable(self.capture_snapshot())

    # -- interaction -----------------------------------------------------

    def click(self, node: UiNode) -> bool:
        if not node.is_visible():
            _log(f"click: node has no on-screen bounds ({node.role})")
            return False
        x, y = node.center
        return adbwrap.tap(self.serial, x, y)

    def set_text(self, node: UiNode, text: str) -> bool:
        """Focus the field, clear what it holds, and type ``text``."""
        if not self.click(node):
            return False
        existing = node.text if node.text and node.text != node.hint else ""
        if existing:
            adbwrap.key_event(self.serial, "KEYCODE_MOVE_END", *(["KEYCODE_DEL"] * len(existing)))
        return adbwrap.input_text(self.serial, text)

    def submit(self, node: UiNode) -> bool:
        """Focus an input and fire its IME action."""
        if not self.click(node):
            return False
        return adbwrap.key_event(self.serial, "KEYCODE_ENTER")

    def _scroll(self, container: UiNode, forward: bool) -> bool:
        left, top, right, bottom = container.bounds
        if right <= left or bottom <= top:
            return False
        x = (left + right) // 2
        near_top = top + (bottom - top) // 4
        near_bottom = bottom - (bottom - top) // 4
        if forward:
            return adbwrap.swipe(self.serial, x, near_bottom, x, near_top)
        return adbwrap.swipe(self.serial, x, near_top, x, near_bottom)

    def scroll_forward(self, container: UiNode) -> bool:
        return self._scroll(container, forward=True)

    def scroll_backward(self, container: UiNode) -> bool:
        return self._scroll(container, forward=False)

    def global_back(self) -> bool:
        return adbwrap.key_event(self.serial, "KEYCODE_BACK")

    def is_installed(self, package: str) -> bool:
        return adbwrap.is_installed(self.serial, package)

    def launch_app(self, package: str) -> bool:
        return adbwrap.launch_app(self.serial, package)
