"""Sentry DSNs: parsing, formatting and the API URLs derived from them."""

from __future__ import annotations

import enum
import json
import re
from dataclasses import dataclass
from urllib.parse import urlsplit

from sentrylite.auth import Auth, auth_from_dsn
from sentrylite.project_id import ParseProjectIdError, ProjectId

_SCHEME_NAME = re.compile(r"[A-Za-z][A-Za-z0-9+.\-]*")
_SPECIAL_SCHEMES = frozenset({"http", "https", "ftp", "ws", "wss", "file"})
_PORT_MAX = 0xFFFF


class DsnErrorKind(enum.Enum):
    """The ways a DSN can fail to parse."""

    INVALID_URL = "no valid url provided"
    INVALID_SCHEME = "no valid scheme"
    NO_USERNAME = "username is empty"
    NO_PROJECT_ID = "empty path"
    INVALID_PROJECT_ID = "invalid project id"


class ParseDsnError(ValueError):
    """Raised when a DSN cannot be parsed."""

    def __init__(self, kind: DsnErrorKind) -> None:
        super().__init__(kind.value)
        self.kind = kind


class Scheme(enum.Enum):
    """The URL schemes supported for DSNs."""

    HTTP = "http"
    HTTPS = "https"

    def default_port(self) -> int:
        """The port used when the DSN names none."""
        return 80 if self is Scheme.HTTP else 443

    def __str__(self) -> str:
        return self.value


def _split_host_port(hostport: str) -> tuple[str, int | None]:
    if hostport.startswith("["):
        end = hostport.find("]")
        if end == -1:
            raise ParseDsnError(DsnErrorKind.INVALID_URL)
        host, rest = hostport[: end + 1], hostport[end + 1 :]
        if rest and not rest.startswith(":"):
            raise ParseDsnError(DsnErrorKind.INVALID_URL)
        port_text = rest[1:]
    else:
        host, _, port_text = hostport.partition(":")
    if not port_text:
        return host.lower(), None
    if not port_text.isdigit() or not port_text.isascii():
        raise ParseDsnError(DsnErrorKind.INVALID_URL)
    port = int(port_text)
    if port > _PORT_MAX:
        raise ParseDsnError(DsnErrorKind.INVALID_URL)
    return host.lower(), port


@dataclass(frozen=True)
class Dsn:
    """A parsed Sentry DSN."""

    scheme: Scheme
    public_key: str
    secret_key: str | None
    host: str
    explicit_port: int | None
    path: str
    project_id: ProjectId

    @classmethod
    def parse(cls, text: str) -> Dsn:
        """Parse a DSN string such as ``https://key@host/42``."""
        text = text.strip()
        scheme_text, colon, _ = text.partition(":")
        if not colon or not _SCHEME_NAME.fullmatch(scheme_text):
            raise ParseDsnError(DsnErrorKind.INVALID_URL)
        try:
            parts = urlsplit(text)
        except ValueError as exc:
            raise ParseDsnError(DsnErrorKind.INVALID_URL) from exc

        scheme_name = parts.scheme.lower()
        userinfo, at, hostport = parts.netloc.rpartition("@")
        if not at:
            userinfo, hostport = "", parts.netloc
        host, port = _split_host_port(hostport)
        if scheme_name in _SPECIAL_SCHEMES and not host:
            raise ParseDsnError(DsnErrorKind.INVALID_URL)

        url_path = parts.path or "/"
        if url_path == "/":
            raise ParseDsnError(DsnErrorKind.NO_PROJECT_ID)
        head, slash, tail = url_path.strip("/").rpartition("/")
        try:
            project_id = ProjectId.parse(tail)
        except ParseProjectIdError as exc:
            raise ParseDsnError(DsnErrorKind.INVALID_PROJECT_ID) from exc
        prefix = head if slash else ""
        path = "/" if prefix in ("", "/") else f"/{prefix}/"

        username, _, userinfo_rest = userinfo.partition(":")
        if not username:
            raise ParseDsnError(DsnErrorKind.NO_USERNAME)

        try:
            scheme = Scheme(scheme_name)
        except ValueError as exc:
            raise ParseDsnError(DsnErrorKind.INVALID_SCHEME) from exc

        if not host:
            raise ParseDsnError(DsnErrorKind.INVALID_URL)
        if port == scheme.default_port():
            port = None

        stored = userinfo_rest or None
        return cls(scheme, username, stored, host, port, path, project_id)

    def port(self) -> int:
        """The port, falling back to the scheme's default."""
        if self.explicit_port is None:
            return self.scheme.default_port()
        return self.explicit_port

    def to_auth(self, client_agent: str | None = None) -> Auth:
        """An auth header for this DSN with the latest protocol version."""
        return auth_from_dsn(self, client_agent)

    def _api_url(self, endpoint: str) -> str:
        url = f"{self.scheme}://{self.host}"
        if self.port() != self.scheme.default_port():
            url += f":{self.port()}"
        return f"{url}{self.path}api/{self.project_id}/{endpoint}/"

    def store_api_url(self) -> str:
        """The event submission URL."""
        return self._api_url("store")

    def envelope_api_url(self) -> str:
        """The envelope submission URL."""
        return self._api_url("envelope")

    def __str__(self) -> str:
        text = f"{self.scheme}://{self.public_key}:"
        if self.secret_key is not None:
            text += self.secret_key
        text += f"@{self.host}"
        if self.explicit_port is not None:
            text += f":{self.explicit_port}"
        return f"{text}{self.path}{self.project_id}"

    def to_json(self) -> str:
        """Serialize to a JSON string literal."""
        return json.dumps(str(self), ensure_ascii=False)

    @classmethod
    def from_json(cls, data: str | bytes) -> Dsn:
        """Deserialize from a JSON string literal."""
        value = json.loads(data)
        if not isinstance(value, str):
            raise ValueError(f"invalid type: expected a string, got {type(value).__name__}")
        return cls.parse(value)