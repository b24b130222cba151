from dataclasses import dataclass
from typing import Dict, Optional


EXTRA_HEADER_NAMES = ("accept", "accept-language", "accept-encoding")


@dataclass(frozen=True)
class Event:
    """Domain model for one recorded beacon request.

    Optional fields are ``None`` when the request did not carry them; they
    are never filled with placeholder values.
    """

    timestamp: str
    method: str
    request_url: str
    path: str
    page: Optional[str] = None
    token: Optional[str] = None
    user_agent: Optional[str] = None
    referer: Optional[str] = None
    client_ip: Optional[str] = None
    country: Optional[str] = None
    city: Optional[str] = None
    datacenter_colo: Optional[str] = None
    asn: Optional[int] = None
    as_organization: Optional[str] = None
    extra_headers: Optional[Dict[str, Optional[str]]] = None
