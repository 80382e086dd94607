"""Per-request client metadata recorded on beacon and access events."""
from __future__ import annotations

from dataclasses import dataclass, field

from fastapi import Request

from app.models.beacon_event import DeviceType
from app.services.user_agent import ClientInfo, classify_user_agent

# Checked in order; the first non-empty header wins
_IP_HEADERS = ("cf-connecting-ip", "x-real-ip", "x-client-ip")


@dataclass(frozen=True)
class RequestContext:
    ip_address: str
    user_agent: str
    client: ClientInfo = field(default_factory=lambda: classify_user_agent(""))
    referrer: str | None = None
    language: str | None = None

    @property
    def device_type(self) -> DeviceType:
        return self.client.device_type

    @classmethod
    def build(cls, ip_address: str, user_agent: str, referrer: str | None = None, language: str | None = None) -> "RequestContext":
        return cls(
            ip_address=ip_address or "unknown",
            user_agent=user_agent or "unknown",
            client=classify_user_agent(user_agent),
            referrer=referrer or None,
            language=language or None,
        )


def client_ip(request: Request) -> str:
    for name in _IP_HEADERS:
        value = (request.headers.get(name) or "").strip()
        if value:
            return value
    forwarded = (request.headers.get("x-forwarded-for") or "").strip()
    if forwarded:
        # May hold a proxy chain; the first entry is the original client
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else "unknown"


def context_from_request(request: Request) -> RequestContext:
    accept_language = request.headers.get("accept-language") or ""
    return RequestContext.build(
        ip_address=client_ip(request),
        user_agent=(request.headers.get("user-agent") or "").strip(),
        referrer=request.headers.get("referer") or request.headers.get("referrer"),
        language=accept_language.split(",")[0].strip() or None,
    )
