"""Client classification from the User-Agent header.

Rule tables are ordered: the first matching pattern wins, so more specific
patterns (tablets before phones, Edge/Opera before Chrome, iOS before macOS)
come first. Add a row to extend classification; call sites do not change.
"""
from __future__ import annotations

import re
from dataclasses import dataclass

from app.models.beacon_event import DeviceType

UNKNOWN = "Unknown"

DEVICE_RULES: list[tuple[re.Pattern, DeviceType]] = [
    (re.compile(r"iPad|Tablet|PlayBook|Kindle|Silk/", re.I), DeviceType.tablet),
    # Android tablets omit "Mobile" from the UA
    (re.compile(r"Android(?!.*Mobile)", re.I), DeviceType.tablet),
    (re.compile(r"Mobile|iPhone|iPod|Windows Phone|BlackBerry", re.I), DeviceType.mobile),
]

BROWSER_RULES: list[tuple[re.Pattern, str]] = [
    # Mail providers fetch images through their own proxies
    (re.compile(r"GoogleImageProxy"), "Gmail Image Proxy"),
    (re.compile(r"YahooMailProxy"), "Yahoo Mail Proxy"),
    (re.compile(r"Edg(e|A|iOS)?/"), "Edge"),
    (re.compile(r"OPR/|Opera"), "Opera"),
    (re.compile(r"Firefox/|FxiOS/"), "Firefox"),
    (re.compile(r"Chrome/|CriOS/"), "Chrome"),
    (re.compile(r"Safari/"), "Safari"),
    (re.compile(r"Thunderbird/"), "Thunderbird"),
    (re.compile(r"Microsoft Outlook|ms-office"), "Outlook"),
]

OS_RULES: list[tuple[re.Pattern, str]] = [
    (re.compile(r"Windows Phone"), "Windows Phone"),
    (re.compile(r"Windows"), "Windows"),
    (re.compile(r"iPhone|iPad|iPod|iOS"), "iOS"),
    (re.compile(r"Android"), "Android"),
    (re.compile(r"CrOS"), "ChromeOS"),
    (re.compile(r"Mac OS X|Macintosh|Mac OS"), "macOS"),
    (re.compile(r"Linux"), "Linux"),
]


@dataclass(frozen=True)
class ClientInfo:
    device_type: DeviceType
    browser: str
    os: str


def _first_match(rules, ua: str, default):
    for pattern, label in rules:
        if pattern.search(ua):
            return label
    return default


def classify_user_agent(user_agent: str | None) -> ClientInfo:
    ua = (user_agent or "").strip()
    return ClientInfo(
        device_type=_first_match(DEVICE_RULES, ua, DeviceType.desktop),
        browser=_first_match(BROWSER_RULES, ua, UNKNOWN),
        os=_first_match(OS_RULES, ua, UNKNOWN),
    )
