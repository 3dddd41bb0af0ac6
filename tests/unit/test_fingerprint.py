"""Unit tests for payload hashing."""

import re

from api_conventions.fingerprint import (
    _canonicalize_headers,
    _canonicalize_query_string,
    compute_payload_hash,
    normalize_body,
)


def payload_hash(**overrides: object) -> str:
    fields: dict[str, object] = {
        "method": "POST",
        "path": "/users",
        "query_string": "",
        "headers": {"Content-Type": "application/json"},
        "body": b'{"displayName": "Ada Lovelace"}',
    }
    fields.update(overrides)
    return compute_payload_hash(**fields)  # type: ignore[arg-type]


def test_hash_is_sha256_hex() -> None:
    assert re.fullmatch(r"[a-f0-9]{64}", payload_hash())


def test_hash_is_deterministic() -> None:
    assert payload_hash() == payload_hash()


def test_json_key_order_and_whitespace_do_not_matter() -> None:
    a = payload_hash(body=b'{"displayName": "Ada", "age": 36}')
    b = payload_hash(body=b'{\n  "age":36,"displayName":"Ada"\n}')
    assert a == b


def test_different_body_changes_hash() -> None:
    assert payload_hash(body=b'{"displayName":"Ada Lovelace"}') != payload_hash(
        body=b'{"displayName":"Grace Hopper"}'
    )


def test_method_is_case_insensitive() -> None:
    assert payload_hash(method="post") == payload_hash(method="POST")


def test_different_method_changes_hash() -> None:
    assert payload_hash(method="PUT") != payload_hash(method="POST")


def test_path_canonicalization() -> None:
    assert payload_hash(path="/Users/") == payload_hash(path="/users")
    assert payload_hash(path="") == payload_hash(path="/")


def test_query_parameter_order_does_not_matter() -> None:
    assert payload_hash(query_string="b=2&a=1") == payload_hash(query_string="a=1&b=2")


def test_only_included_headers_count() -> None:
    a = payload_hash(headers={"Content-Type": "application/json", "User-Agent": "curl"})
    b = payload_hash(headers={"content-type": "application/json", "User-Agent": "httpie"})
    assert a == b


def test_included_header_value_matters() -> None:
    assert payload_hash(headers={"Content-Type": "text/plain"}) != payload_hash()


def test_custom_included_headers() -> None:
    a = payload_hash(headers={"X-Tenant": "t1"}, included_headers=["x-tenant"])
    b = payload_hash(headers={"X-Tenant": "t2"}, included_headers=["x-tenant"])
    assert a != b


def test_normalize_body_json() -> None:
    assert normalize_body(b'{ "b": 1, "a": {"d": 2, "c": 3} }') == b'{"a":{"c":3,"d":2},"b":1}'


def test_normalize_body_keeps_unicode() -> None:
    assert normalize_body('{"name": "Ada Lovelace é"}'.encode()) == (
        '{"name":"Ada Lovelace é"}'.encode()
    )


def test_normalize_body_non_json_unchanged() -> None:
    assert normalize_body(b"plain text") == b"plain text"
    assert normalize_body(b"\xff\xfe") == b"\xff\xfe"
    assert normalize_body(b"") == b""


def test_canonicalize_query_string() -> None:
    assert _canonicalize_query_string("z=1&a=2&a=1") == "a=1&a=2&z=1"
    assert _canonicalize_query_string("  ") == ""
    assert _canonicalize_query_string("flag=") == "flag="


def test_canonicalize_headers() -> None:
    result = _canonicalize_headers(
        {"Content-Type": " application/json ", "Authorization": "secret"},
        ["content-type"],
    )
    assert result == '{"content-type":"application/json"}'
