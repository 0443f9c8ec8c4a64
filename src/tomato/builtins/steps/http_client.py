from __future__ import annotations

import logging
from functools import partial
from typing import Tuple

from tomato.compare import body_diff
from tomato.exception import StepAssertion, TomatoError
from tomato.registry.steps import StepRegistry
from tomato.spec import HTTP_CLIENT
from tomato.steps.base import DOCSTRING

log = logging.getLogger("tomato.builtins.steps.http_client")

R = r'"([^"]*)"'


def split_target(target: str) -> Tuple[str, str]:
    """`GET /path` -> ("GET", "/path")."""
    parts = target.split(" ")
    if len(parts) != 2 or not all(parts):
        raise TomatoError(f"unrecognized target format: {target}, should follow `[METHOD] [PATH]`")
    return parts[0], parts[1]


def send_request(resources, name: str, target: str) -> None:
    method, path = split_target(target)
    resources.http_client(name).request(method, path, None)


def send_request_with_body(resources, name: str, target: str, body: str) -> None:
    method, path = split_target(target)
    resources.http_client(name).request(method, path, body.strip().encode("utf-8"))


def send_request_from_file(resources, name: str, target: str, stub_name: str) -> None:
    method, path = split_target(target)
    resources.http_client(name).request_from_file(method, path, stub_name)


def sends_http_request(resources, name: str, method: str, path: str) -> None:
    resources.http_client(name).request(method, path, None)


def sends_http_request_with_body(resources, name: str, method: str, path: str, body: str) -> None:
    resources.http_client(name).request(method, path, body.strip().encode("utf-8"))


def set_request_header(resources, name: str, key: str, value: str) -> None:
    resources.http_client(name).set_request_header(key, value)


def response_code(resources, name: str, expected: int) -> None:
    code, _headers, body = resources.http_client(name).response()
    if code != expected:
        raise StepAssertion(
            f"expecting response code to be {expected}, got {code}",
            {"response body": body.decode("utf-8", errors="replace")},
        )


def response_header(resources, name: str, header: str, expected: str) -> None:
    _code, headers, body = resources.http_client(name).response()
    lowered = {k.lower(): v for k, v in headers.items()}
    actual = lowered.get(header.lower(), "")
    if actual != expected:
        raise StepAssertion(
            f"unexpected response header `{header}`",
            {
                "expecting": expected,
                "actual": actual,
                "response body": body.decode("utf-8", errors="replace"),
            },
        )


def _check_body(resources, name: str, expected: str, *, exact: bool) -> None:
    _code, _headers, body = resources.http_client(name).response()
    try:
        diffs = body_diff(expected, body, exact=exact)
    except ValueError as e:
        diffs = [str(e)]
    if diffs:
        raise StepAssertion(
            "unexpected response body",
            {
                "mismatch": "\n".join(diffs),
                "expected": expected.strip(),
                "actual": body.decode("utf-8", errors="replace"),
            },
        )


def response_body_contains(resources, name: str, expected: str) -> None:
    _check_body(resources, name, expected, exact=False)


def response_body_equals(resources, name: str, expected: str) -> None:
    _check_body(resources, name, expected, exact=True)


def register_all(registry: StepRegistry) -> None:
    add = partial(registry.add, capability=HTTP_CLIENT)

    add(f"{R} send request to {R}", send_request,
        group="Request", description="Send a request without a body",
        example='"api" send request to "GET /users"')
    for word in ("body", "payload"):
        add(f"{R} send request to {R} with {word}", send_request_with_body, payload=DOCSTRING,
            group="Request", description=f"Send a request with the doc string as {word}",
            example=f'"api" send request to "POST /users" with {word}')
        add(f"{R} send request to {R} with {word} from file {R}", send_request_from_file,
            group="Request", description=f"Send a request with a stub file as {word}",
            example=f'"api" send request to "POST /users" with {word} from file "user.json"')
    add(f"{R} set request header key {R} with value {R}", set_request_header,
        group="Request", description="Set a header sent with every following request",
        example='"api" set request header key "Authorization" with value "Bearer t"')

    add(f"{R} sends a {R} HTTP request to {R}", sends_http_request,
        group="Request", description="Send a request naming method and path separately",
        example='"api" sends a "GET" HTTP request to "/users"')
    for word in ("body", "payload"):
        add(f"{R} sends a {R} HTTP request to {R} with {word}", sends_http_request_with_body, payload=DOCSTRING,
            group="Request", description="Send a request with a body naming method and path separately",
            example=f'"api" sends a "POST" HTTP request to "/users" with {word}')

    add(rf"{R} response code should be (\d+)", response_code, types=(str, int),
        group="Response assertions", description="Assert the last response status code",
        example='"api" response code should be 200')
    add(f"{R} response header {R} should be {R}", response_header,
        group="Response assertions", description="Assert a header of the last response",
        example='"api" response header "Content-Type" should be "application/json"')
    add(f"{R} response body should contain", response_body_contains, payload=DOCSTRING,
        group="Response assertions", description="Assert the last response body contains the doc string",
        example='"api" response body should contain')
    add(f"{R} response body should equal", response_body_equals, payload=DOCSTRING,
        group="Response assertions", description="Assert the last response body equals the doc string",
        example='"api" response body should equal')
    add(f"{R} response body should be", response_body_equals, payload=DOCSTRING,
        group="Response assertions", description="Alias of `response body should equal`",
        example='"api" response body should be')
