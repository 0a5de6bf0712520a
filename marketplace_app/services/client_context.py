"""
Client context extraction for tracked requests.

These rules decide which IP a click is attributed to, so they are kept
as small pure functions over header values.
"""

from typing import Mapping, Optional

from fastapi import Request

from marketplace_app.queue.models import ClickContext

UNKNOWN_IP = "unknown"
UNKNOWN_USER_AGENT = "unknown"
DIRECT_REFERER = "direct"
IPV4_MAPPED_PREFIX = "::ffff:"


def normalize_ip(ip: str) -> str:
    """Strip the IPv4-mapped IPv6 prefix (::ffff:203.0.113.5 -> 203.0.113.5)"""
    if ip.startswith(IPV4_MAPPED_PREFIX):
        return ip[len(IPV4_MAPPED_PREFIX):]
    return ip


def extract_client_ip(
    forwarded_for: Optional[str],
    socket_address: Optional[str] = None,
    framework_ip: Optional[str] = None,
) -> str:
    """
    Pick the address a click is attributed to.

    Order: left-most X-Forwarded-For entry (the original client in a
    standard proxy chain), then the socket peer address, then an address
    provided by the framework/proxy middleware, then "unknown".
    """
    client_ip = None

    if forwarded_for:
        first = forwarded_for.split(",")[0].strip()
        if first:
            client_ip = first

    if not client_ip:
        client_ip = socket_address or framework_ip or UNKNOWN_IP

    return normalize_ip(client_ip)


def extract_user_agent(headers: Mapping[str, str]) -> str:
    return headers.get("user-agent") or UNKNOWN_USER_AGENT


def extract_referer(headers: Mapping[str, str]) -> str:
    # Both spellings are seen in the wild; the standard one wins
    return headers.get("referer") or headers.get("referrer") or DIRECT_REFERER


def build_click_context(request: Request, application_id: str) -> ClickContext:
    """Capture everything the click recorder needs from the live request"""
    headers = request.headers
    socket_address = request.client.host if request.client else None
    framework_ip = getattr(request.state, "client_ip", None)

    return ClickContext(
        application_id=application_id,
        ip_address=extract_client_ip(
            headers.get("x-forwarded-for"), socket_address, framework_ip
        ),
        user_agent=extract_user_agent(headers),
        referer=extract_referer(headers),
    )
