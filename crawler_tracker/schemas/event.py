import json
from dataclasses import asdict
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from crawler_tracker.models.event import Event


def parse_timestamp(value: str) -> datetime:
    """Parse an ISO-8601 instant, accepting the ``Z`` suffix."""
    if value.endswith("Z"):
        value = value[:-1] + "+00:00"
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


class EventRecord(BaseModel):
    """Stored/served shape of an :class:`Event`.

    Field aliases are the JSON keys the dashboard reads (``ts``, ``ua`` ...).
    """

    model_config = ConfigDict(
        populate_by_name=True,
        json_schema_extra={
            "example": {
                "ts": "2025-11-05T12:00:00.000Z",
                "method": "GET",
                "url": "https://tracker.example/pixel.gif?page=%2Fblog",
                "path": "/pixel.gif",
                "page": "/blog",
                "ua": "Mozilla/5.0 (compatible; GPTBot/1.0)",
                "ip": "203.0.113.7",
                "country": "US",
                "asn": 13335,
                "headers": {"accept": "image/*", "accept-language": None, "accept-encoding": "gzip"},
            }
        },
    )

    timestamp: str = Field(alias="ts")
    method: str
    request_url: str = Field(alias="url")
    path: str
    page: Optional[str] = None
    token: Optional[str] = None
    user_agent: Optional[str] = Field(default=None, alias="ua")
    referer: Optional[str] = None
    client_ip: Optional[str] = Field(default=None, alias="ip")
    country: Optional[str] = None
    city: Optional[str] = None
    datacenter_colo: Optional[str] = Field(default=None, alias="colo")
    asn: Optional[int] = None
    as_organization: Optional[str] = Field(default=None, alias="asOrganization")
    extra_headers: Optional[Dict[str, Optional[str]]] = Field(default=None, alias="headers")

    @field_validator("timestamp")
    @classmethod
    def _timestamp_is_iso(cls, value: str) -> str:
        parse_timestamp(value)
        return value

    @classmethod
    def from_event(cls, event: Event) -> "EventRecord":
        return cls(**asdict(event))

    def to_event(self) -> Event:
        return Event(**self.model_dump())

    def to_wire(self) -> Dict[str, Any]:
        data = self.model_dump(by_alias=True)
        return {key: value for key, value in data.items() if value is not None}

    def to_json(self) -> str:
        return json.dumps(self.to_wire(), separators=(",", ":"), ensure_ascii=False)

    @property
    def sort_key(self) -> datetime:
        return parse_timestamp(self.timestamp)
