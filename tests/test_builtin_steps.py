from __future__ import annotations

import pytest

from fakes import FakeCache, FakeQueue, FakeSQL
from tomato.builtins.steps import cache, http_client, http_server, queue, shell, sql
from tomato.exception import DriverError, StepAssertion, TomatoError
from tomato.resources.base import ResourceInit
from tomato.resources.manager import ResourceHandle, ResourceManager
from tomato.spec import CACHE, QUEUE, SQL, ResourceSpec


@pytest.fixture()
def resources(settings):
    handles = []
    for name, type_, cls in (("db", SQL, FakeSQL), ("mq", QUEUE, FakeQueue), ("kv", CACHE, FakeCache)):
        spec = ResourceSpec(name=name, type=type_, driver="fake")
        handles.append(ResourceHandle(spec, cls(ResourceInit(name=name, type=type_, driver="fake", params={}))))
    return ResourceManager(handles, settings=settings)


def test_table_compare_reports_expected_row_and_table(resources):
    sql.table_insert(resources, "db", "users", [{"name": "alice", "age": "30"}])

    sql.table_compare(resources, "db", "users", [{"name": "alice", "age": "*"}])
    with pytest.raises(StepAssertion) as ei:
        sql.table_compare(resources, "db", "users", [{"name": "bob", "age": "*"}])

    assert ei.value.message == "unable to find rows in table `users`"
    assert '"name": "bob"' in ei.value.details["expected row"]
    assert '"alice"' in ei.value.details["table values"]

    sql.table_empty(resources, "db", "users")
    assert resources.sql("db").select("users", {}) == []


def test_null_cells_match_missing_columns(resources):
    sql.table_insert(resources, "db", "users", [{"name": "carl", "email": "NULL"}])

    sql.table_compare(resources, "db", "users", [{"name": "carl", "email": "NULL"}])


def test_queue_messages(resources):
    with pytest.raises(DriverError, match="queue not exist, please listen to it ex:k"):
        queue.message_count(resources, "mq", "ex:k", 0)

    queue.listen(resources, "mq", "ex:k")
    with pytest.raises(StepAssertion, match="^no message on queue$"):
        queue.message_contains(resources, "mq", "ex:k", '{"id": 1}')

    queue.publish(resources, "mq", "ex:k", '\n  {"id": 1, "extra": true}\n')
    queue.message_count(resources, "mq", "ex:k", 1)
    queue.messages_in_target(resources, 1, "mq", "ex:k")
    queue.message_contains(resources, "mq", "ex:k", '{"id": 1}')
    with pytest.raises(StepAssertion) as ei:
        queue.message_equals(resources, "mq", "ex:k", '{"id": 1}')
    assert ei.value.message == "expecting message"
    assert ei.value.details["mismatch"] == "extra: unexpected key"
    with pytest.raises(StepAssertion, match="expecting message count to be 2, got 1"):
        queue.message_count(resources, "mq", "ex:k", 2)


def test_cache_assertions(resources):
    cache.store(resources, "kv", "k", "v")

    cache.has_key(resources, "kv", "k")
    cache.stored_value(resources, "kv", "k", "v")
    with pytest.raises(StepAssertion, match="unable to find correct value in cache") as ei:
        cache.stored_value(resources, "kv", "k", "w")
    assert ei.value.details == {"expected value": "w", "cached value": "v"}
    with pytest.raises(StepAssertion, match="found value in cache"):
        cache.hasnt_key(resources, "kv", "k")
    with pytest.raises(StepAssertion, match="unable to find value in cache"):
        cache.has_key(resources, "kv", "missing")


@pytest.mark.parametrize(
    "module, target, expected",
    [
        (http_client, "GET /users", ("GET", "/users")),
        (http_server, "DELETE /users/1", ("DELETE", "/users/1")),
        (http_server, "/users", ("GET", "/users")),
    ],
)
def test_split_target(module, target, expected):
    assert module.split_target(target) == expected


def test_split_target_errors():
    with pytest.raises(TomatoError, match="unrecognized target format: /users"):
        http_client.split_target("/users")
    with pytest.raises(TomatoError, match="target format should be following"):
        http_server.split_target("GET /a /b")


def test_execute_rejects_empty_and_unbalanced_commands(resources):
    with pytest.raises(TomatoError, match="empty command"):
        shell.execute(resources, "sh", "   ")
    with pytest.raises(TomatoError, match="invalid command"):
        shell.execute(resources, "sh", "echo 'unterminated")


def test_wrong_capability_is_reported(resources):
    with pytest.raises(TomatoError, match="kv is a cache resource, not queue"):
        queue.listen(resources, "kv", "ex:k")
