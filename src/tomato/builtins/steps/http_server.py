from __future__ import annotations

from functools import partial
from typing import Tuple

from tomato.exception import StepAssertion, TomatoError
from tomato.registry.steps import StepRegistry
from tomato.spec import HTTP_SERVER
from tomato.steps.base import DOCSTRING

R = r'"([^"]*)"'
N = r"(\d+)"

DEFAULT_METHOD = "GET"


def split_target(target: str) -> Tuple[str, str]:
    """`POST /p` -> ("POST", "/p"); a bare `/p` means GET."""
    parts = target.split(" ")
    if len(parts) == 1 and parts[0]:
        return DEFAULT_METHOD, parts[0]
    if len(parts) != 2 or not all(parts):
        raise TomatoError("target format should be following `[METHOD] [PATH]`")
    return parts[0], parts[1]


def set_default_response(resources, name: str, code: int, body: str) -> None:
    resources.http_server(name).set_response(DEFAULT_METHOD, "", code, body.encode("utf-8"))


def set_default_response_from_file(resources, name: str, code: int, stub_name: str) -> None:
    resources.http_server(name).set_response_from_file(DEFAULT_METHOD, "", code, stub_name)


def set_path_response(resources, name: str, path: str, code: int, body: str) -> None:
    resources.http_server(name).set_response(DEFAULT_METHOD, path, code, body.encode("utf-8"))


def set_method_response(resources, name: str, method: str, path: str, code: int, body: str) -> None:
    resources.http_server(name).set_response(method, path, code, body.encode("utf-8"))


def set_method_response_no_body(resources, name: str, method: str, path: str, code: int) -> None:
    resources.http_server(name).set_response(method, path, code, b"")


def set_method_response_from_file(resources, name: str, method: str, path: str, code: int, stub_name: str) -> None:
    resources.http_server(name).set_response_from_file(method, path, code, stub_name)


def request_count(resources, name: str, target: str, expected: int) -> None:
    method, path = split_target(target)
    count = resources.http_server(name).get_requests_count(method, path)
    if count != expected:
        raise StepAssertion(f"expecting request count to be {expected}, got {count}")


def register_all(registry: StepRegistry) -> None:
    add = partial(registry.add, capability=HTTP_SERVER)

    add(f"set {R} response code to {N} and response body", set_default_response,
        types=(str, int), payload=DOCSTRING,
        group="Stub responses", description="Answer every unmatched GET with this code and body",
        example='set "stub" response code to 200 and response body')
    add(f"set {R} response code to {N} and response body from file {R}", set_default_response_from_file,
        types=(str, int, str),
        group="Stub responses", description="Answer every unmatched GET with a stub file",
        example='set "stub" response code to 200 and response body from file "ok.json"')
    add(f"set {R} with path {R} response code to {N} and response body", set_path_response,
        types=(str, str, int), payload=DOCSTRING,
        group="Stub responses", description="Answer GET on a path with this code and body",
        example='set "stub" with path "/users" response code to 200 and response body')
    add(f"set {R} with method {R} and path {R} response code to {N} and response body", set_method_response,
        types=(str, str, str, int), payload=DOCSTRING,
        group="Stub responses", description="Answer a method and path with this code and body",
        example='set "stub" with method "POST" and path "/users" response code to 201 and response body')
    add(f"set {R} with method {R} and path {R} response code to {N}", set_method_response_no_body,
        types=(str, str, str, int),
        group="Stub responses", description="Answer a method and path with an empty body",
        example='set "stub" with method "DELETE" and path "/users/1" response code to 204')
    add(f"set {R} with method {R} and path {R} response code to {N} and response body from file {R}",
        set_method_response_from_file, types=(str, str, str, int, str),
        group="Stub responses", description="Answer a method and path with a stub file",
        example='set "stub" with method "GET" and path "/users" response code to 200 and response body from file "users.json"')

    add(f"{R} responds with a {N} status code and a response body of", set_default_response,
        types=(str, int), payload=DOCSTRING,
        group="Stub responses", description="Alias of `set ... response code to N and response body`",
        example='"stub" responds with a 200 status code and a response body of')
    add(f"{R} with path {R} responds with a {N} status code and a response body of", set_path_response,
        types=(str, str, int), payload=DOCSTRING,
        group="Stub responses", description="Alias of `set ... with path ... response code to N and response body`",
        example='"stub" with path "/users" responds with a 200 status code and a response body of')

    add(f"{R} with path {R} request count should be {N}", request_count,
        types=(str, str, int),
        group="Request assertions", description="Assert how many requests hit `METHOD PATH` (bare path means GET)",
        example='"stub" with path "GET /users" request count should be 1')
