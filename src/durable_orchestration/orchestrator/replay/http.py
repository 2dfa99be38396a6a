"""Durable HTTP request/response types.

A durable HTTP call is executed by the host as a built-in activity. With the
asynchronous pattern enabled, a ``202 Accepted`` response that carries a
``Location`` header is polled with further ``GET`` requests, each preceded by a
durable timer.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field

HTTP_ACTIVITY_NAME = "BuiltIn::HttpActivity"


@dataclass(frozen=True, slots=True)
class ManagedIdentityTokenSource:
    """Token source backed by an Azure managed identity."""

    resource: str
    kind: str = "AzureManagedIdentity"

    def to_json(self) -> dict[str, object]:
        return {"kind": self.kind, "resource": self.resource}


@dataclass(frozen=True, slots=True)
class DurableHttpRequest:
    method: str
    uri: str
    content: str | None = None
    headers: dict[str, str] = field(default_factory=dict)
    token_source: ManagedIdentityTokenSource | None = None
    asynchronous_pattern_enabled: bool = True

    def to_json(self) -> dict[str, object]:
        out: dict[str, object] = {
            "method": self.method,
            "uri": self.uri,
            "headers": dict(self.headers),
            "asynchronousPatternEnabled": self.asynchronous_pattern_enabled,
        }
        if self.content is not None:
            out["content"] = self.content
        if self.token_source is not None:
            out["tokenSource"] = self.token_source.to_json()
        return out

    def poll(self, location: str) -> DurableHttpRequest:
        """The follow-up status request for an accepted asynchronous operation."""

        return DurableHttpRequest(
            method="GET",
            uri=location,
            headers=dict(self.headers),
            token_source=self.token_source,
            asynchronous_pattern_enabled=self.asynchronous_pattern_enabled,
        )


@dataclass(frozen=True, slots=True)
class DurableHttpResponse:
    status_code: int
    headers: dict[str, str] = field(default_factory=dict)
    content: str | None = None

    def header(self, name: str) -> str | None:
        wanted = name.lower()
        for key, value in self.headers.items():
            if key.lower() == wanted:
                return value
        return None

    @property
    def is_accepted(self) -> bool:
        return self.status_code == 202 and self.header("Location") is not None

    def retry_after_seconds(self) -> float | None:
        raw = self.header("Retry-After")
        if raw is None:
            return None
        try:
            seconds = float(raw)
        except ValueError:
            return None
        return seconds if seconds >= 0 else None

    def to_json(self) -> dict[str, object]:
        return {"statusCode": self.status_code, "headers": dict(self.headers), "content": self.content}

    @staticmethod
    def from_json(obj: object) -> DurableHttpResponse:
        if isinstance(obj, str):
            obj = json.loads(obj)
        if not isinstance(obj, dict):
            raise ValueError(f"Cannot read an HTTP response from {type(obj).__name__}")

        status_raw = obj.get("statusCode", obj.get("status_code"))
        if not isinstance(status_raw, int):
            raise ValueError("HTTP response is missing an integer statusCode")

        headers_raw = obj.get("headers") or {}
        headers: dict[str, str] = {}
        if isinstance(headers_raw, dict):
            for key, value in headers_raw.items():
                # Hosts may send multi-valued headers as lists.
                if isinstance(value, list):
                    value = ",".join(str(v) for v in value)
                headers[str(key)] = str(value)

        content_raw = obj.get("content")
        content = content_raw if isinstance(content_raw, str) or content_raw is None else json.dumps(content_raw)
        return DurableHttpResponse(status_code=status_raw, headers=headers, content=content)
