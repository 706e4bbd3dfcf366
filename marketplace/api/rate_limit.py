"""Rate limiting and client address resolution for the marketplace API.

Rate-limit buckets and the moderation audit trail both key on the client
address. X-Forwarded-For is honoured only when the direct peer is one of
``Settings.trusted_proxies``, so a client connecting directly cannot pick
the address that gets recorded against it.
"""

import ipaddress

from slowapi import Limiter
from slowapi.util import get_remote_address
from starlette.requests import Request

from marketplace.logging_config import get_logger

from .config import Settings, get_settings

logger = get_logger("api.rate_limit")


def trusted_proxy_networks(settings: Settings) -> list:
    networks = []
    for entry in settings.trusted_proxies:
        try:
            networks.append(ipaddress.ip_network(entry.strip(), strict=False))
        except ValueError:
            logger.warning(f"Ignoring invalid trusted proxy entry: {entry!r}")
    return networks


def get_client_ip(request: Request, settings: Settings | None = None) -> str:
    """First X-Forwarded-For hop when the peer is a trusted proxy, else the peer."""
    peer = get_remote_address(request)
    try:
        peer_addr = ipaddress.ip_address(peer)
    except ValueError:
        return peer

    networks = trusted_proxy_networks(settings or get_settings())
    if any(peer_addr in network for network in networks):
        forwarded = request.headers.get("x-forwarded-for", "").split(",")[0].strip()
        if forwarded:
            return forwarded
    return peer


limiter = Limiter(key_func=get_client_ip, enabled=get_settings().rate_limit_enabled)
