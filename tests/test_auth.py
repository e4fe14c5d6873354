from datetime import datetime, timezone
from types import SimpleNamespace

import pytest

from sentrylite.auth import (
    PROTOCOL_VERSION,
    Auth,
    AuthErrorKind,
    ParseAuthError,
    auth_from_dsn,
)

PUBLIC_KEY = "placeholder"


def test_auth_parsing():
    auth = Auth.parse(
        "Sentry sentry_timestamp=1328055286.5, "
        "sentry_client=raven-python/42, "
        "sentry_version=6, "
        "sentry_key=public, "
        "sentry_secret=secret"
    )
    assert auth.timestamp == datetime(2012, 2, 1, 0, 14, 46, 500000, tzinfo=timezone.utc)
    assert auth.client_agent == "raven-python/42"
    assert auth.version == 6
    assert auth.public_key == "public"
    assert auth.secret_key == "secret"
    assert not auth.is_public()
    assert str(auth) == (
        "Sentry sentry_key=public, "
        "sentry_version=6, "
        "sentry_timestamp=1328055286.5, "
        "sentry_client=raven-python/42, "
        "sentry_secret=secret"
    )


def test_auth_float_parsing():
    auth = Auth.parse("Sentry sentry_version=2.0, sentry_key=public")
    assert auth.version == 2
    assert auth.public_key == "public"
    assert str(auth) == "Sentry sentry_key=public, sentry_version=2"


def test_auth_from_iterator():
    pairs = {
        "sentry_version": "7",
        "sentry_client": "raven-js/3.23.3",
        "sentry_key": PUBLIC_KEY,
    }
    auth = Auth.from_pairs(pairs)
    assert auth.timestamp is None
    assert auth.client_agent == "raven-js/3.23.3"
    assert auth.version == 7
    assert auth.public_key == PUBLIC_KEY
    assert auth.secret_key is None
    assert auth.is_public()


def test_auth_from_tuple_pairs():
    auth = Auth.from_pairs([("sentry_key", PUBLIC_KEY), ("unknown", "x")])
    assert auth.public_key == PUBLIC_KEY
    assert auth.version == PROTOCOL_VERSION


def test_auth_from_querystring():
    auth = Auth.from_querystring(
        b"sentry_version=7&sentry_client=raven-js/3.23.3&sentry_key=placeholder"
    )
    assert auth.timestamp is None
    assert auth.client_agent == "raven-js/3.23.3"
    assert auth.version == 7
    assert auth.public_key == PUBLIC_KEY
    assert auth.secret_key is None


def test_auth_from_querystring_decodes():
    auth = Auth.from_querystring("sentry_key=pub+key%21")
    assert auth.public_key == "pub key!"


def test_auth_to_dsn():
    dsn = SimpleNamespace(public_key="username", secret_key="password")
    auth = auth_from_dsn(dsn, "sentry-rust/1.0")
    assert auth.client_agent == "sentry-rust/1.0"
    assert auth.version == PROTOCOL_VERSION
    assert auth.public_key == "username"
    assert auth.secret_key == "password"
    assert auth.timestamp is not None and auth.timestamp.tzinfo is not None


def test_auth_to_json():
    pairs = {
        "sentry_version": "7",
        "sentry_client": "raven-js/3.23.3",
        "sentry_key": PUBLIC_KEY,
    }
    auth = Auth.from_pairs(pairs)
    assert auth.to_json() == (
        '{"sentry_client":"raven-js/3.23.3","sentry_version":7,'
        '"sentry_key":"placeholder","sentry_secret":null}'
    )


def test_auth_from_json():
    document = '{"sentry_client":"raven-js/3.23.3","sentry_version":7,"sentry_key":"placeholder"}'
    auth = Auth.from_json(document)
    assert auth.timestamp is None
    assert auth.client_agent == "raven-js/3.23.3"
    assert auth.version == 7
    assert auth.public_key == PUBLIC_KEY
    assert auth.secret_key is None


def test_auth_json_missing_field():
    with pytest.raises(ValueError, match="sentry_version"):
        Auth.from_json('{"sentry_key":"placeholder"}')


def test_auth_string_timestamp():
    auth = Auth.from_querystring(
        b"sentry_version=7&sentry_client=raven-clj&sentry_key=placeholder"
        b"&sentry_timestamp=2019-12-13 12:02:58.94"
    )
    assert auth.timestamp is None


def test_non_sentry_auth():
    with pytest.raises(ParseAuthError) as info:
        Auth.parse("Basic sentry_key=public")
    assert info.value.kind is AuthErrorKind.NON_SENTRY_AUTH
    assert str(info.value) == "non sentry auth"


def test_prefix_case_insensitive():
    assert Auth.parse("SENTRY sentry_key=public").public_key == "public"


def test_invalid_version():
    with pytest.raises(ParseAuthError) as info:
        Auth.parse("Sentry sentry_version=abc, sentry_key=public")
    assert info.value.kind is AuthErrorKind.INVALID_VERSION


def test_version_out_of_range():
    with pytest.raises(ParseAuthError) as info:
        Auth.from_pairs({"sentry_version": "70000", "sentry_key": "public"})
    assert info.value.kind is AuthErrorKind.INVALID_VERSION


def test_missing_public_key():
    with pytest.raises(ParseAuthError) as info:
        Auth.parse("Sentry sentry_version=7")
    assert info.value.kind is AuthErrorKind.MISSING_PUBLIC_KEY


def test_display_integer_timestamp():
    auth = Auth.parse("Sentry sentry_key=public, sentry_timestamp=1328055286")
    assert str(auth) == (
        "Sentry sentry_key=public, sentry_version=7, sentry_timestamp=1328055286"
    )