"""The Sentry authentication header: parsing, formatting and JSON form."""

from __future__ import annotations

import enum
import json
import math
import re
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Protocol
from urllib.parse import parse_qsl

PROTOCOL_VERSION = 7

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)
_U16_MAX = 0xFFFF
_UNSIGNED = re.compile(r"\+?[0-9]+")


class AuthErrorKind(enum.Enum):
    """The ways an auth header can fail to parse."""

    NON_SENTRY_AUTH = "non sentry auth"
    INVALID_VERSION = "invalid value for version"
    MISSING_PUBLIC_KEY = "missing public key in auth header"


class ParseAuthError(ValueError):
    """Raised when an auth header cannot be parsed."""

    def __init__(self, kind: AuthErrorKind) -> None:
        super().__init__(kind.value)
        self.kind = kind


class _DsnLike(Protocol):
    public_key: str
    secret_key: str | None


def _timestamp_to_datetime(text: str) -> datetime | None:
    if text != text.strip() or "_" in text:
        return None
    try:
        seconds = float(text)
    except ValueError:
        return None
    if not math.isfinite(seconds) or seconds < 0:
        return None
    try:
        return _EPOCH + timedelta(seconds=seconds)
    except OverflowError:
        return None


def _datetime_to_timestamp(moment: datetime) -> str:
    delta = moment - _EPOCH
    seconds = delta.days * 86400 + delta.seconds + delta.microseconds / 1_000_000
    if float(seconds).is_integer():
        return str(int(seconds))
    return repr(float(seconds))


def _parse_version(text: str) -> int:
    major = text.split(".", 1)[0]
    if not _UNSIGNED.fullmatch(major):
        raise ParseAuthError(AuthErrorKind.INVALID_VERSION)
    version = int(major)
    if version > _U16_MAX:
        raise ParseAuthError(AuthErrorKind.INVALID_VERSION)
    return version


@dataclass
class Auth:
    """An auth header as sent by a Sentry client."""

    public_key: str
    version: int = PROTOCOL_VERSION
    secret_key: str | None = None
    client_agent: str | None = None
    timestamp: datetime | None = None

    @classmethod
    def from_pairs(cls, pairs: Mapping[str, str] | Iterable[tuple[str, str]]) -> Auth:
        """Build an auth header from key/value pairs; unknown keys are ignored."""
        items = pairs.items() if isinstance(pairs, Mapping) else pairs
        auth = cls(public_key="")
        for key, value in items:
            if key == "sentry_timestamp":
                auth.timestamp = _timestamp_to_datetime(value)
            elif key == "sentry_client":
                auth.client_agent = value
            elif key == "sentry_version":
                auth.version = _parse_version(value)
            elif key == "sentry_key":
                auth.public_key = value
            elif key == "sentry_secret":
                auth.secret_key = value
        if not auth.public_key:
            raise ParseAuthError(AuthErrorKind.MISSING_PUBLIC_KEY)
        return auth

    @classmethod
    def from_querystring(cls, qs: bytes | str) -> Auth:
        """Build an auth header from a form-encoded query string."""
        if isinstance(qs, bytes):
            qs = qs.decode("utf-8", errors="replace")
        return cls.from_pairs(parse_qsl(qs, keep_blank_values=True))

    @classmethod
    def parse(cls, text: str) -> Auth:
        """Parse a ``Sentry key=value, ...`` header value."""
        prefix, _, rest = text.partition(" ")
        if not (prefix.isascii() and prefix.lower() == "sentry"):
            raise ParseAuthError(AuthErrorKind.NON_SENTRY_AUTH)

        def items() -> Iterable[tuple[str, str]]:
            for item in rest.split(","):
                parts = item.split("=")
                if len(parts) >= 2:
                    yield parts[0].strip(), parts[1].strip()

        return cls.from_pairs(items())

    def is_public(self) -> bool:
        """True if the client authenticated without a secret."""
        return self.secret_key is None

    def __str__(self) -> str:
        text = f"Sentry sentry_key={self.public_key}, sentry_version={self.version}"
        if self.timestamp is not None:
            text += f", sentry_timestamp={_datetime_to_timestamp(self.timestamp)}"
        if self.client_agent is not None:
            text += f", sentry_client={self.client_agent}"
        if self.secret_key is not None:
            text += f", sentry_secret={self.secret_key}"
        return text

    def to_json(self) -> str:
        """Serialize to compact JSON; the timestamp is not included."""
        payload = {
            "sentry_client": self.client_agent,
            "sentry_version": self.version,
            "sentry_key": self.public_key,
            "sentry_secret": self.secret_key,
        }
        return json.dumps(payload, separators=(",", ":"), ensure_ascii=False)

    @classmethod
    def from_json(cls, data: str | bytes) -> Auth:
        """Deserialize from the JSON produced by :meth:`to_json`."""
        obj: Any = json.loads(data)
        if not isinstance(obj, dict):
            raise ValueError("invalid type: expected struct Auth")
        for required in ("sentry_version", "sentry_key"):
            if required not in obj:
                raise ValueError(f"missing field `{required}`")
        version = obj["sentry_version"]
        if isinstance(version, bool) or not isinstance(version, int):
            raise ValueError("invalid type for `sentry_version`, expected u16")
        if not 0 <= version <= _U16_MAX:
            raise ValueError(f"invalid value for `sentry_version`: {version}")
        key = obj["sentry_key"]
        if not isinstance(key, str):
            raise ValueError("invalid type for `sentry_key`, expected a string")
        optional: dict[str, str | None] = {}
        for name in ("sentry_client", "sentry_secret"):
            value = obj.get(name)
            if value is not None and not isinstance(value, str):
                raise ValueError(f"invalid type for `{name}`, expected a string")
            optional[name] = value
        return cls(
            public_key=key,
            version=version,
            secret_key=optional["sentry_secret"],
            client_agent=optional["sentry_client"],
        )


def auth_from_dsn(dsn: _DsnLike, client_agent: str | None) -> Auth:
    """Create an auth header for a DSN, stamped with the current time."""
    return Auth(
        public_key=dsn.public_key,
        version=PROTOCOL_VERSION,
        secret_key=dsn.secret_key,
        client_agent=client_agent,
        timestamp=datetime.now(timezone.utc),
    )