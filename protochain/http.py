from __future__ import annotations

import json
import urllib.parse
from collections.abc import Iterable
from collections.abc import Iterator
from dataclasses import dataclass
from dataclasses import field
from typing import Any

HTTP1_1 = "HTTP/1.1"
HTTP2 = "HTTP/2.0"

# Header that carries the remaining deadline budget, in seconds, down the chain.
TIMEOUT_HEADER = "x-protochain-timeout"

REASONS = {
    200: "OK",
    204: "No Content",
    400: "Bad Request",
    404: "Not Found",
    405: "Method Not Allowed",
    500: "Internal Server Error",
    502: "Bad Gateway",
    503: "Service Unavailable",
    504: "Gateway Timeout",
}


def _kconv(key: str) -> str:
    return key.lower()


class Headers:
    """
    Ordered, case-insensitive header collection.

    Header names are stored lowercased, as HTTP/2 requires on the wire.
    Repeated headers are kept as separate fields.
    """

    def __init__(self, fields: Iterable[tuple[str | bytes, str | bytes]] = ()):
        self.fields: list[tuple[str, str]] = []
        for name, value in fields:
            if isinstance(name, bytes):
                name = name.decode("latin-1")
            if isinstance(value, bytes):
                value = value.decode("latin-1")
            self.fields.append((_kconv(name), value))

    def __getitem__(self, key: str) -> str:
        values = self.get_all(key)
        if not values:
            raise KeyError(key)
        return ", ".join(values)

    def __contains__(self, key: object) -> bool:
        return isinstance(key, str) and any(k == _kconv(key) for k, _ in self.fields)

    def __iter__(self) -> Iterator[str]:
        seen = set()
        for k, _ in self.fields:
            if k not in seen:
                seen.add(k)
                yield k

    def __len__(self) -> int:
        return len(self.fields)

    def __eq__(self, other):
        if isinstance(other, Headers):
            return self.fields == other.fields
        return False

    def __repr__(self):
        return f"Headers({self.fields!r})"

    def get(self, key: str, default: str | None = None) -> str | None:
        try:
            return self[key]
        except KeyError:
            return default

    def get_all(self, key: str) -> list[str]:
        key = _kconv(key)
        return [v for k, v in self.fields if k == key]

    def add(self, key: str, value: str) -> None:
        self.fields.append((_kconv(key), value))

    def set(self, key: str, value: str) -> None:
        self.remove(key)
        self.add(key, value)

    def remove(self, key: str) -> None:
        key = _kconv(key)
        self.fields = [(k, v) for k, v in self.fields if k != key]

    def copy(self) -> Headers:
        return Headers(self.fields)

    def raw(self) -> list[tuple[bytes, bytes]]:
        return [(k.encode("latin-1"), v.encode("latin-1")) for k, v in self.fields]


@dataclass
class Request:
    """
    An HTTP request as seen by one hop, independent of the wire protocol it arrived on.

    For outbound requests, `http_version` is filled in by the transport once
    the protocol has been negotiated.
    """

    method: str
    scheme: str
    authority: str
    path: str
    headers: Headers = field(default_factory=Headers)
    content: bytes = b""
    http_version: str = HTTP1_1

    @classmethod
    def make(
        cls,
        method: str,
        url: str,
        content: bytes = b"",
        headers: Headers | Iterable[tuple[str, str]] = (),
    ) -> Request:
        parts = urllib.parse.urlsplit(url)
        if parts.scheme not in ("http", "https") or not parts.netloc:
            raise ValueError(f"Invalid URL: {url!r}")
        path = parts.path or "/"
        if parts.query:
            path = f"{path}?{parts.query}"
        if not isinstance(headers, Headers):
            headers = Headers(headers)
        return cls(
            method=method.upper(),
            scheme=parts.scheme,
            authority=parts.netloc,
            path=path,
            headers=headers,
            content=content,
        )

    @property
    def host(self) -> str:
        return urllib.parse.urlsplit(f"//{self.authority}").hostname or ""

    @property
    def port(self) -> int:
        port = urllib.parse.urlsplit(f"//{self.authority}").port
        if port is None:
            return 443 if self.scheme == "https" else 80
        return port

    @property
    def query_string(self) -> str:
        """
        The raw, undecoded query string, without the leading "?".
        """
        return self.path.partition("?")[2]

    @property
    def url(self) -> str:
        return f"{self.scheme}://{self.authority}{self.path}"


@dataclass
class Response:
    status_code: int
    headers: Headers = field(default_factory=Headers)
    content: bytes = b""
    http_version: str = HTTP1_1

    @classmethod
    def make(
        cls,
        status_code: int = 200,
        content: bytes | str = b"",
        headers: Headers | Iterable[tuple[str, str]] | None = None,
    ) -> Response:
        if isinstance(content, str):
            content = content.encode("utf-8")
        if headers is None:
            headers = Headers([("content-type", "text/plain; charset=utf-8")])
        elif not isinstance(headers, Headers):
            headers = Headers(headers)
        return cls(status_code=status_code, headers=headers, content=content)

    @classmethod
    def make_json(cls, status_code: int, data: Any) -> Response:
        return cls.make(
            status_code,
            json.dumps(data, separators=(",", ":")),
            [("content-type", "application/json")],
        )

    @property
    def reason(self) -> str:
        return REASONS.get(self.status_code, "")

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 300
