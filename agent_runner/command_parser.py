"""command_parser.py - Pull app names and entities out of a spoken-style command.

Used only by the fallback planner, so the heuristics cover the handful of
command shapes its templates know about:

    "send hi to Bob on WhatsApp"
    "open youtube and search for lofi beats"
"""

import re
import sys

from thefuzz import fuzz, process

# Lower-case app name -> Android package.
APP_PACKAGES = {
    "whatsapp": "com.whatsapp",
    "youtube": "com.google.android.youtube",
    "google chat": "com.google.android.apps.dynamite",
    "gmail": "com.google.android.gm",
    "chrome": "com.android.chrome",
    "maps": "com.google.android.apps.maps",
    "google maps": "com.google.android.apps.maps",
    "messages": "com.google.android.apps.messaging",
    "telegram": "org.telegram.messenger",
    "instagram": "com.instagram.android",
    "spotify": "com.spotify.music",
    "play store": "com.android.vending",
    "settings": "com.android.settings",
    "camera": "com.android.camera2",
    "calculator": "com.google.android.calculator",
}

FUZZY_CUTOFF = 85

_STOP = r"(?:\s+(?:on|in|via|using|saying|that|with)\b|[,:.!?]|$)"
_CONTACT_PATTERNS = (
    re.compile(r"\bto\s+(?P<name>.+?)" + _STOP, re.IGNORECASE),
    re.compile(r"\b(?:message|text|tell|msg)\s+(?!to\b)(?P<name>.+?)" + _STOP, re.IGNORECASE),
)
_QUOTED_RE = re.compile(r"[\"“](?P<body>.+?)[\"”]")
_SAYING_RE = re.compile(r"\b(?:saying|that says|that)\s+(?P<body>.+)$", re.IGNORECASE)
_SEND_BODY_RE = re.compile(r"\bsend\s+(?P<body>.+?)\s+to\s+", re.IGNORECASE)
_OPENER_RE = re.compile(
    r"\b(?:open|launch|start|on|in|using|via)\s+(?:the\s+)?(?P<app>[a-z][a-z ]*?)(?:\s+app)?"
    r"(?:\s+(?:and|to|then)\b|[,.]|$)",
    re.IGNORECASE,
)
_SEARCH_RE = re.compile(
    r"\b(?:search(?:\s+for)?|look\s+up|play|watch|find)\s+(?P<query>.+)$", re.IGNORECASE
)
_CONTINUATION_RE = re.compile(r"\s+and\s+(?:then\s+)?(?:play|open|click|watch|tap)\b.*$", re.IGNORECASE)
_SEND_WORDS_RE = re.compile(r"\b(?:send|message|text|tell|msg|dm)\b", re.IGNORECASE)
_SEARCH_WORDS_RE = re.compile(r"\b(?:search|play|watch|find|look\s+up)\b", re.IGNORECASE)
_GENERIC_BODIES = {"a message", "message", "a text", "text", "a msg", "msg"}


def _log(msg: str) -> None:
    print(f"[parser] {msg}", file=sys.stderr)


def _tidy(text: str) -> str:
    return text.strip().strip("\"'“”").strip(" ,.!?")


def _app_pattern(name: str) -> re.Pattern:
    return re.compile(r"\b" + re.escape(name) + r"\b", re.IGNORECASE)


class CommandParser:
    """Static app lookup plus regex entity extraction."""

    def __init__(self, packages: dict[str, str] | None = None):
        self.packages = dict(packages or APP_PACKAGES)
        # Longest names first so "google chat" wins over "chat"-like prefixes.
        self._names = sorted(self.packages, key=len, reverse=True)

    def extract_app_name(self, command: str) -> str | None:
        """Name of the app the command refers to, lower-cased, or None."""
        for name in self._names:
            if _app_pattern(name).search(command):
                return name
        match = _OPENER_RE.search(command)
        if match is None:
            return None
        candidate = match.group("app").strip().lower()
        return candidate or None

    def get_package_name(self, app_name: str) -> str | None:
        """Resolve an app name to its package, tolerating small misspellings."""
        key = app_name.strip().lower()
        if not key:
            return None
        if key in self.packages:
            return self.packages[key]
        match = process.extractOne(key, self._names, scorer=fuzz.ratio, score_cutoff=FUZZY_CUTOFF)
        if match is None:
            _log(f"no package for app '{app_name}'")
            return None
        _log(f"'{app_name}' -> '{match[0]}' (score {match[1]})")
        return self.packages[match[0]]

    def is_send_message_command(self, command: str) -> bool:
        return bool(_SEND_WORDS_RE.search(command))

    def is_search_command(self, command: str) -> bool:
        return bool(_SEARCH_WORDS_RE.search(command))

    def _strip_app_mentions(self, text: str) -> str:
        for name in self._names:
            text = re.sub(
                r"\s+(?:on|in|using|via)\s+(?:the\s+)?" + re.escape(name) + r"(?:\s+app)?\b",
                "",
                text,
                flags=re.IGNORECASE,
            )
        return text

    def extract_contact_name(self, command: str) -> str | None:
        for pattern in _CONTACT_PATTERNS:
            match = pattern.search(command)
            if match:
                name = _tidy(match.group("name"))
                if name and name.lower() not in self.packages:
                    return name
        return None

    def extract_message_content(self, command: str) -> str | None:
        """Message body: a quoted span, text after "saying", or what sits between "send" and "to"."""
        match = _QUOTED_RE.search(command)
        if match:
            return match.group("body").strip()
        match = _SAYING_RE.search(command)
        if match:
            body = _tidy(self._strip_app_mentions(match.group("body")))
            return body or None
        match = _SEND_BODY_RE.search(command)
        if match:
            body = _tidy(match.group("body"))
            if body and body.lower() not in _GENERIC_BODIES:
                return body
        return None

    def extract_search_query(self, command: str) -> str | None:
        match = _QUOTED_RE.search(command)
        if match:
            return match.group("body").strip()
        match = _SEARCH_RE.search(command)
        if match is None:
            return None
        query = _CONTINUATION_RE.sub("", match.group("query"))
        query = _tidy(self._strip_app_mentions(query))
        return query or None
