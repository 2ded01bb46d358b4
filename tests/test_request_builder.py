import json
from urllib.parse import parse_qsl

import pytest

from resource_proxy.errors import InvalidDescriptorError
from resource_proxy.models import ResourcePayload
from resource_proxy.request_builder import (
    BodyEncoding,
    OperationDescriptor,
    build_request,
    build_target,
)
from resource_proxy.settings import Settings

SETTINGS = Settings(external_api_base_url="http://mock.local")


def test_id_placeholder_is_substituted() -> None:
    descriptor = OperationDescriptor("GET", "/resources/{id}", path_params={"id": 42})

    request = build_request(SETTINGS, descriptor)

    assert build_target(descriptor) == "/resources/42"
    assert str(request.url) == "http://mock.local/resources/42"
    assert request.method == "GET"


def test_reserved_characters_in_bindings_are_percent_encoded() -> None:
    descriptor = OperationDescriptor("GET", "/resources/{id}", path_params={"id": "a/b c"})

    assert build_target(descriptor) == "/resources/a%2Fb%20c"
    assert build_request(SETTINGS, descriptor).url.raw_path == b"/resources/a%2Fb%20c"


def test_query_parameters_keep_order_and_drop_absent_values() -> None:
    present = OperationDescriptor("GET", "/resources/search", query_params={"userId": 1})
    absent = OperationDescriptor("GET", "/resources/search", query_params={"userId": None})
    ordered = OperationDescriptor(
        "GET", "/resources", query_params={"b": "2", "skip": None, "a": "x y"}
    )

    assert build_target(present) == "/resources/search?userId=1"
    assert build_target(absent) == "/resources/search"
    assert build_target(ordered) == "/resources?b=2&a=x+y"


@pytest.mark.parametrize(
    ("template", "params"),
    [
        ("/resources/{id}", {}),
        ("/resources", {"id": 1}),
        ("/resources/{id}/{slug}", {"id": 1}),
    ],
)
def test_placeholder_binding_mismatch_is_rejected(template: str, params: dict) -> None:
    with pytest.raises(InvalidDescriptorError):
        build_request(SETTINGS, OperationDescriptor("GET", template, path_params=params))


@pytest.mark.parametrize("template", ["http://elsewhere.test/posts", "//elsewhere.test/posts", "posts"])
def test_absolute_or_unanchored_paths_are_rejected(template: str) -> None:
    with pytest.raises(InvalidDescriptorError):
        build_request(SETTINGS, OperationDescriptor("GET", template))


def test_unsupported_method_is_rejected() -> None:
    with pytest.raises(InvalidDescriptorError):
        build_request(SETTINGS, OperationDescriptor("TRACE", "/resources"))


def test_default_headers_are_merged_under_caller_headers() -> None:
    request = build_request(
        SETTINGS,
        OperationDescriptor("GET", "/resources", headers={"accept": "text/plain", "X-Trace": "abc"}),
    )

    assert request.headers["Accept"] == "text/plain"
    assert request.headers["Content-Type"] == "application/json"
    assert request.headers["X-Trace"] == "abc"
    assert request.headers.get_list("accept") == ["text/plain"]


def test_json_body_emits_null_fields() -> None:
    request = build_request(
        SETTINGS,
        OperationDescriptor(
            "POST",
            "/resources",
            body=ResourcePayload(name="John Doe"),
            encoding=BodyEncoding.JSON,
        ),
    )

    assert json.loads(request.content) == {"name": "John Doe", "email": None, "message": None}
    assert request.headers["Content-Type"] == "application/json"


def test_json_body_accepts_nested_mappings() -> None:
    updates = {"status": "read", "meta": {"pinned": True, "score": 1.5}, "note": None}
    request = build_request(
        SETTINGS,
        OperationDescriptor(
            "PATCH",
            "/resources/{id}",
            path_params={"id": 7},
            body=updates,
            encoding=BodyEncoding.JSON,
        ),
    )

    assert json.loads(request.content) == updates


def test_form_body_forces_form_content_type() -> None:
    request = build_request(
        SETTINGS,
        OperationDescriptor(
            "POST",
            "/resources/form",
            headers={"Content-Type": "application/json"},
            body={"name": "John Doe", "email": "john@example.com"},
            encoding=BodyEncoding.FORM,
        ),
    )

    assert request.headers.get_list("content-type") == ["application/x-www-form-urlencoded"]
    assert request.content == b"name=John+Doe&email=john%40example.com"
    assert dict(parse_qsl(request.content.decode())) == {
        "name": "John Doe",
        "email": "john@example.com",
    }


def test_form_body_drops_absent_values() -> None:
    request = build_request(
        SETTINGS,
        OperationDescriptor(
            "POST",
            "/resources/form",
            body={"name": "x", "email": None},
            encoding=BodyEncoding.FORM,
        ),
    )

    assert request.content == b"name=x"


def test_no_body_encoding_attaches_nothing() -> None:
    request = build_request(
        SETTINGS,
        OperationDescriptor("DELETE", "/resources/{id}", path_params={"id": 3}),
    )

    assert request.content == b""


@pytest.mark.parametrize(
    ("body", "encoding"),
    [
        (None, BodyEncoding.JSON),
        (None, BodyEncoding.FORM),
        ("name=x", BodyEncoding.FORM),
        ({"name": "x"}, BodyEncoding.NONE),
        ({"when": object()}, BodyEncoding.JSON),
        ({"score": float("nan")}, BodyEncoding.JSON),
        ({"score": float("inf")}, BodyEncoding.JSON),
    ],
)
def test_body_and_encoding_mismatch_is_rejected(body: object, encoding: BodyEncoding) -> None:
    with pytest.raises(InvalidDescriptorError):
        build_request(
            SETTINGS,
            OperationDescriptor("POST", "/resources", body=body, encoding=encoding),
        )


def test_request_carries_configured_timeouts() -> None:
    settings = Settings(
        external_api_base_url="http://mock.local",
        connect_timeout_ms=1500,
        read_timeout_ms=2500,
    )

    request = build_request(settings, OperationDescriptor("GET", "/resources"))

    timeout = request.extensions["timeout"]
    assert timeout["read"] == 2.5
    # The connect timeout is enforced too, not only carried in settings.
    assert timeout["connect"] == 1.5
    assert timeout["connect"] != timeout["read"]
