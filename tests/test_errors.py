import httpx

from fizzy.api.errors import (
    ApiError,
    AuthenticationError,
    ErrorKind,
    NotFoundError,
    RateLimitError,
    ValidationError,
    decode_error,
    error_from_response,
    invalid_url_error,
    network_error,
    parse_retry_after,
    read_error_body,
)


def test_status_mapping() -> None:
    assert type(error_from_response(400, "Bad Request", None)) is ApiError
    assert isinstance(error_from_response(401, "Unauthorized", None), AuthenticationError)
    assert isinstance(error_from_response(404, "Not Found", None), NotFoundError)
    assert isinstance(error_from_response(422, "Unprocessable Entity", None), ValidationError)
    assert isinstance(error_from_response(429, "Too Many Requests", None), RateLimitError)
    assert type(error_from_response(500, "Internal Server Error", None)) is ApiError


def test_bad_request_has_fixed_advisory_message() -> None:
    error = error_from_response(400, "Bad Request", {"error": "ignored"})

    assert error.message == "Bad Request: invalid parameters."
    assert error.status == 400
    assert error.response_body == {"error": "ignored"}


def test_generic_message_prefers_body_error_then_reason() -> None:
    assert error_from_response(409, "Conflict", {"error": "already closed"}).message == (
        "Request failed (409): already closed"
    )
    assert error_from_response(409, "Conflict", "plain text").message == "Request failed (409): Conflict"


def test_kinds_are_closed_enum() -> None:
    assert ApiError("x").kind is ErrorKind.GENERIC
    assert RateLimitError("x").kind is ErrorKind.RATE_LIMIT
    assert AuthenticationError().kind is ErrorKind.AUTHENTICATION
    assert NotFoundError().kind is ErrorKind.NOT_FOUND
    assert ValidationError("x").kind is ErrorKind.VALIDATION
    assert {kind.value for kind in ErrorKind} == {
        "generic",
        "rate_limit",
        "authentication",
        "not_found",
        "validation",
    }


def test_subclass_statuses_are_fixed() -> None:
    assert RateLimitError("x").status == 429
    assert AuthenticationError().status == 401
    assert NotFoundError().status == 404
    assert ValidationError("x").status == 422


def test_validation_details_only_for_objects() -> None:
    with_details = error_from_response(422, "Unprocessable Entity", {"title": ["is too short"]})
    without = error_from_response(422, "Unprocessable Entity", ["not", "an", "object"])

    assert isinstance(with_details, ValidationError)
    assert with_details.validation_details == {"title": ["is too short"]}
    assert isinstance(without, ValidationError)
    assert without.validation_details is None


def test_retry_after_parsing() -> None:
    assert parse_retry_after({"Retry-After": "5"}) == 5
    assert parse_retry_after({"Retry-After": "Wed, 21 Oct 2015 07:28:00 GMT"}) is None
    assert parse_retry_after({}) is None
    assert parse_retry_after(None) is None
    assert parse_retry_after({"Retry-After": "1.5"}) == 1
    assert parse_retry_after({"Retry-After": "-3"}) == 0

    error = error_from_response(429, "Too Many Requests", None, httpx.Headers({"Retry-After": "12"}))
    assert isinstance(error, RateLimitError)
    assert error.retry_after == 12


def test_read_error_body_falls_back_to_text() -> None:
    assert read_error_body(httpx.Response(500, json={"error": "boom"})) == {"error": "boom"}
    assert read_error_body(httpx.Response(500, text="Internal failure")) == "Internal failure"


def test_network_and_decode_errors() -> None:
    net = network_error(httpx.ConnectError("refused"))
    assert net.status is None
    assert net.message == "Network error: refused"

    body = "x" * 500
    decode = decode_error(200, body, ValueError("Expecting value"))
    assert decode.status == 200
    assert decode.message.endswith("x" * 200)
    assert "x" * 201 not in decode.message


def test_str_and_to_dict() -> None:
    error = ValidationError("Validation failed: bad", validation_details={"name": ["blank"]})

    assert str(error) == "Validation failed: bad (status=422)"
    assert error.to_dict() == {
        "name": "ValidationError",
        "kind": "validation",
        "message": "Validation failed: bad",
        "status": 422,
        "response_body": None,
        "validation_details": {"name": ["blank"]},
    }
    assert str(network_error(OSError("down"))) == "Network error: down"


def test_invalid_url_error_is_generic_without_status() -> None:
    error = invalid_url_error("http://[bad", ValueError("Invalid IPv6 URL"))

    assert error.kind is ErrorKind.GENERIC
    assert error.status is None
    assert "http://[bad" in error.message
