"""
User-Agent classification for device, OS and browser breakdowns.

User-Agents are notoriously messy (Chrome claims to be Mozilla, Safari,
and Chrome all at once), so detection walks ordered pattern tables and
takes the first match.

Key Design Decisions:
- Check newer/specific browsers first (Edge before Chrome)
- Check TV, console and tablet before mobile (iPad UAs contain "Mobile")
- Report "<name> <version>" for OS and browser, version omitted when unknown
- Anything with a UA but no recognised device class counts as a desktop

Classification never raises. A result whose fields all came from defaults
is flagged with ``is_fallback`` so callers can tell "parsed as Unknown"
apart from "could not parse".
"""

import re
from dataclasses import dataclass
from enum import Enum
from functools import lru_cache


class DeviceType(str, Enum):
    """Device category."""
    DESKTOP = "desktop"
    MOBILE = "mobile"
    TABLET = "tablet"
    SMARTTV = "smarttv"
    CONSOLE = "console"
    WEARABLE = "wearable"


UNKNOWN = "Unknown"


@dataclass(frozen=True)
class DeviceInfo:
    """
    Classified user-agent.

    Attributes:
        device: Device model when known, else the device type, else "Desktop"
        device_type: DeviceType value, or None when there was no UA at all
        os: "<name> <version>" (e.g. "iOS 17.0"), "Unknown" if unrecognised
        browser: "<name> <version>" (e.g. "Chrome 120.0.0.0")
        is_fallback: True when nothing in the UA could be recognised
    """
    device: str = UNKNOWN
    device_type: str | None = None
    os: str = UNKNOWN
    browser: str = UNKNOWN
    is_fallback: bool = True

    @property
    def browser_name(self) -> str:
        """Browser name without its version (the text before the first space)."""
        return self.browser.split(" ")[0] or UNKNOWN


# =============================================================================
# BROWSER DETECTION PATTERNS
# =============================================================================
# Order matters! Check specific browsers before generic ones.
# Each tuple: (pattern, browser_name). Group 1, when present, is the version.

BROWSER_PATTERNS = [
    # New Chromium-based browsers (check before Chrome)
    (r"Edg(?:e|A|iOS)?/([\d.]+)", "Edge"),
    (r"OPR/([\d.]+)", "Opera"),
    (r"Opera.*Version/([\d.]+)", "Opera"),
    (r"Vivaldi/([\d.]+)", "Vivaldi"),
    (r"Brave/([\d.]+)", "Brave"),

    # Regional browsers
    (r"SamsungBrowser/([\d.]+)", "Samsung Internet"),
    (r"UCBrowser/([\d.]+)", "UC Browser"),
    (r"YaBrowser/([\d.]+)", "Yandex"),
    (r"MicroMessenger/([\d.]+)", "WeChat"),
    (r"MQQBrowser/([\d.]+)", "QQBrowser"),
    (r"QQBrowser/([\d.]+)", "QQBrowser"),
    (r"Quark/([\d.]+)", "Quark"),
    (r"baiduboxapp/([\d.]+)", "Baidu"),

    # Firefox variants
    (r"Firefox Focus/([\d.]+)", "Firefox Focus"),
    (r"Firefox/([\d.]+)", "Firefox"),
    (r"FxiOS/([\d.]+)", "Firefox"),  # Firefox on iOS

    # Chrome variants (after other Chromium browsers)
    (r"CriOS/([\d.]+)", "Chrome"),  # Chrome on iOS
    (r"Chrome/([\d.]+)", "Chrome"),
    (r"Chromium/([\d.]+)", "Chromium"),

    # Safari (must come after Chrome which also contains Safari)
    (r"Version/([\d.]+).*Safari", "Safari"),
    (r"Safari/([\d.]+)", "Safari"),

    # IE and legacy
    (r"MSIE ([\d.]+)", "IE"),
    (r"Trident.*rv:([\d.]+)", "IE"),

    # Mobile app WebViews
    (r"Instagram", "Instagram"),
    (r"FBAN|FBAV", "Facebook"),
    (r"Line/([\d.]+)", "Line"),
]

# =============================================================================
# OS DETECTION PATTERNS
# =============================================================================
# Each tuple: (pattern, os_name, version_regex, fixed_version)

OS_PATTERNS = [
    # Apple
    (r"iPhone|iPod", "iOS", r"OS (\d+[_.]\d+(?:[_.]\d+)?)", None),
    (r"iPad", "iOS", r"OS (\d+[_.]\d+(?:[_.]\d+)?)", None),
    (r"Macintosh|Mac OS X", "macOS", r"Mac OS X (\d+[_.]\d+(?:[_.]\d+)?)", None),

    # Android (before Linux since Android contains Linux)
    (r"Android", "Android", r"Android (\d+(?:\.\d+)*)", None),
    (r"HarmonyOS", "HarmonyOS", r"HarmonyOS[ /]?(\d+(?:\.\d+)*)", None),

    # Windows
    (r"Windows NT 10\.0", "Windows", None, "10"),
    (r"Windows NT 6\.3", "Windows", None, "8.1"),
    (r"Windows NT 6\.2", "Windows", None, "8"),
    (r"Windows NT 6\.1", "Windows", None, "7"),
    (r"Windows NT 6\.0", "Windows", None, "Vista"),
    (r"Windows NT 5\.1", "Windows", None, "XP"),
    (r"Windows Phone", "Windows Phone", r"Windows Phone (?:OS )?(\d+(?:\.\d+)*)", None),
    (r"Windows", "Windows", None, None),

    # Chrome OS
    (r"CrOS", "Chrome OS", None, None),

    # Linux variants
    (r"Ubuntu", "Ubuntu", None, None),
    (r"Fedora", "Fedora", None, None),
    (r"Debian", "Debian", None, None),
    (r"Linux", "Linux", None, None),

    # Other
    (r"PlayStation", "PlayStation", None, None),
    (r"Xbox", "Xbox", None, None),
    (r"Nintendo", "Nintendo", None, None),
    (r"FreeBSD", "FreeBSD", None, None),
]

# =============================================================================
# DEVICE TYPE DETECTION
# =============================================================================

TV_INDICATORS = [
    r"SmartTV",
    r"Smart-TV",
    r"Web0S",
    r"NetCast",
    r"Tizen.*TV",
    r"Roku",
    r"BRAVIA",
    r"AppleTV",
    r"tvOS",
    r"FireTV",
    r"CrKey",  # Chromecast
]

CONSOLE_INDICATORS = [
    r"PlayStation",
    r"Xbox",
    r"Nintendo",
]

WEARABLE_INDICATORS = [
    r"Watch OS",
    r"watchOS",
    r"Wear OS",
]

TABLET_INDICATORS = [
    r"iPad",
    r"Android(?!.*Mobile)",  # Android without Mobile = tablet
    r"Tablet",
    r"Kindle",
    r"Silk",
    r"PlayBook",
]

MOBILE_INDICATORS = [
    r"Mobile",
    r"iPhone",
    r"iPod",
    r"BlackBerry",
    r"IEMobile",
    r"Opera Mini",
    r"Opera Mobi",
    r"Windows Phone",
]

# =============================================================================
# DEVICE MODEL DETECTION
# =============================================================================

APPLE_MODELS = [
    (r"iPhone", "iPhone"),
    (r"iPad", "iPad"),
    (r"iPod", "iPod touch"),
    (r"Macintosh", "Macintosh"),
]

# "Android 13; Pixel 7)" / "Android 4.4.2; en-us; SM-G900F Build/KOT49H)"
ANDROID_MODEL = re.compile(
    r"Android [\d.]+; (?:[a-z]{2}[-_][a-zA-Z]{2}; )?([^;)]+?)(?: Build/[^;)]*)?[;)]"
)

# Tokens that sit where the model usually is but are not models
NON_MODEL_TOKENS = {"Mobile", "Tablet", "wv", "U"}


def _detect_device_type(ua: str) -> str | None:
    """Detect device type, or None when no indicator matches."""
    for device_type, indicators in (
        (DeviceType.SMARTTV, TV_INDICATORS),
        (DeviceType.CONSOLE, CONSOLE_INDICATORS),
        (DeviceType.WEARABLE, WEARABLE_INDICATORS),
        (DeviceType.TABLET, TABLET_INDICATORS),
        (DeviceType.MOBILE, MOBILE_INDICATORS),
    ):
        for pattern in indicators:
            if re.search(pattern, ua, re.IGNORECASE):
                return device_type.value
    return None


def _detect_model(ua: str) -> str | None:
    """Detect the device model, if the UA names one."""
    for pattern, model in APPLE_MODELS:
        if re.search(pattern, ua):
            return model

    match = ANDROID_MODEL.search(ua)
    if match:
        model = match.group(1).strip()
        if model and model not in NON_MODEL_TOKENS:
            return model

    return None


def _detect_browser(ua: str) -> tuple[str | None, str | None]:
    """
    Detect browser and version from user-agent.

    Returns: (browser_name, version_string), both None if unrecognised
    """
    for pattern, browser_name in BROWSER_PATTERNS:
        match = re.search(pattern, ua, re.IGNORECASE)
        if match:
            version = match.group(1) if match.lastindex else None
            return (browser_name, version)

    return (None, None)


def _detect_os(ua: str) -> tuple[str | None, str | None]:
    """
    Detect OS and version from user-agent.

    Returns: (os_name, version_string), both None if unrecognised
    """
    for os_pattern, os_name, version_pattern, fixed_version in OS_PATTERNS:
        if re.search(os_pattern, ua, re.IGNORECASE):
            version = fixed_version
            if version_pattern:
                version_match = re.search(version_pattern, ua)
                if version_match:
                    version = version_match.group(1).replace("_", ".")
            return (os_name, version)

    return (None, None)


def _label(name: str | None, version: str | None) -> str:
    return f"{name or UNKNOWN} {version or ''}".strip()


@lru_cache(maxsize=4096)
def classify_device(user_agent: str | None) -> DeviceInfo:
    """
    Classify a user-agent string.

    Args:
        user_agent: The User-Agent header value (may be None or empty)

    Returns:
        DeviceInfo with device, device_type, os and browser

    Examples:
        >>> classify_device("Mozilla/5.0 (iPhone; CPU iPhone OS 17_0 like Mac OS X) AppleWebKit/605.1.15 (KHTML, like Gecko) Version/17.0 Mobile/15E148 Safari/604.1")
        DeviceInfo(device='iPhone', device_type='mobile', os='iOS 17.0', browser='Safari 17.0', is_fallback=False)

        >>> classify_device("")
        DeviceInfo(device='Unknown', device_type=None, os='Unknown', browser='Unknown', is_fallback=True)
    """
    if not user_agent or not user_agent.strip():
        return DeviceInfo()

    browser, browser_version = _detect_browser(user_agent)
    os_name, os_version = _detect_os(user_agent)
    device_type = _detect_device_type(user_agent)
    model = _detect_model(user_agent)

    return DeviceInfo(
        device=model or device_type or "Desktop",
        device_type=device_type or DeviceType.DESKTOP.value,
        os=_label(os_name, os_version),
        browser=_label(browser, browser_version),
        is_fallback=not (browser or os_name or device_type or model),
    )
