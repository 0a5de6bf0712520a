"""
Heuristic user-agent classification.

Deliberately not a full UA parser: a substring scan with an explicit
fallback category. Misclassifications are acceptable.
"""

DEVICE_MOBILE = "mobile"
DEVICE_TABLET = "tablet"
DEVICE_DESKTOP = "desktop"

BROWSER_OTHER = "Other"
# Checked in order; Chrome UAs also contain "Safari"
KNOWN_BROWSERS = ("Chrome", "Firefox", "Safari")


def classify_device(user_agent: str) -> str:
    ua = (user_agent or "").lower()
    if "mobile" in ua:
        return DEVICE_MOBILE
    if "tablet" in ua:
        return DEVICE_TABLET
    return DEVICE_DESKTOP


def classify_browser(user_agent: str) -> str:
    ua = (user_agent or "").lower()
    for browser in KNOWN_BROWSERS:
        if browser.lower() in ua:
            return browser
    return BROWSER_OTHER
