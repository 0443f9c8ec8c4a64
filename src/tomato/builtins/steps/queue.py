from __future__ import annotations

from functools import partial

from tomato.compare import messages_match
from tomato.exception import StepAssertion
from tomato.registry.steps import StepRegistry
from tomato.spec import QUEUE
from tomato.steps.base import DOCSTRING

R = r'"([^"]*)"'
NO_MESSAGE = "no message on queue"


def publish(resources, name: str, target: str, payload: str) -> None:
    resources.queue(name).publish(target, payload.strip().encode("utf-8"))


def publish_from_file(resources, name: str, target: str, stub_name: str) -> None:
    resources.queue(name).publish_from_file(target, stub_name)


def listen(resources, name: str, target: str) -> None:
    resources.queue(name).listen(target)


def message_count(resources, name: str, target: str, expected: int) -> None:
    messages = resources.queue(name).fetch(target)
    if len(messages) != expected:
        raise StepAssertion(f"expecting message count to be {expected}, got {len(messages)}")


def messages_in_target(resources, expected: int, name: str, target: str) -> None:
    message_count(resources, name, target, expected)


def _compare(resources, name: str, target: str, expected: str, *, exact: bool) -> None:
    messages = resources.queue(name).fetch(target)
    try:
        diffs = messages_match(expected, messages, exact=exact)
    except ValueError as e:
        raise StepAssertion(str(e), {"expected message": expected.strip()}) from e
    if not diffs:
        return
    if diffs == [NO_MESSAGE]:
        raise StepAssertion(NO_MESSAGE)
    raise StepAssertion(
        "expecting message",
        {
            "expected message": expected.strip(),
            "consumed messages": "\n".join(m.decode("utf-8", errors="replace") for m in messages),
            "mismatch": "\n".join(diffs),
        },
    )


def message_contains(resources, name: str, target: str, expected: str) -> None:
    _compare(resources, name, target, expected, exact=False)


def message_equals(resources, name: str, target: str, expected: str) -> None:
    _compare(resources, name, target, expected, exact=True)


def register_all(registry: StepRegistry) -> None:
    add = partial(registry.add, capability=QUEUE)

    add(f"publish message to {R} target {R} with payload", publish, payload=DOCSTRING,
        group="Publish", description="Publish the doc string to a target",
        example='publish message to "mq" target "orders:created" with payload')
    add(f"publish message to {R} target {R} with payload from file {R}", publish_from_file,
        group="Publish", description="Publish a stub file to a target",
        example='publish message to "mq" target "orders:created" with payload from file "order.json"')
    add(f"listen message from {R} target {R}", listen,
        group="Consume", description="Start collecting messages for a target",
        example='listen message from "mq" target "orders:created"')
    add(rf"message from {R} target {R} count should be (\d+)", message_count, types=(str, str, int),
        group="Message assertions", description="Assert how many messages were received",
        example='message from "mq" target "orders:created" count should be 1')
    add(f"message from {R} target {R} should contain", message_contains, payload=DOCSTRING,
        group="Message assertions", description="Assert any received message contains the doc string",
        example='message from "mq" target "orders:created" should contain')
    add(f"message from {R} target {R} should equal", message_equals, payload=DOCSTRING,
        group="Message assertions", description="Assert every received message equals the doc string",
        example='message from "mq" target "orders:created" should equal')

    add(f"a message is published to {R} target {R} with the payload", publish, payload=DOCSTRING,
        group="Publish", description="Alias of `publish message to ... with payload`",
        example='a message is published to "mq" target "orders:created" with the payload')
    add(f"a listener is bound to {R} target {R}", listen,
        group="Consume", description="Alias of `listen message from ...`",
        example='a listener is bound to "mq" target "orders:created"')
    add(rf"there should be (\d+) messages in {R} target {R}",
        messages_in_target,
        types=(int, str, str),
        group="Message assertions", description="Alias of `message from ... count should be N`",
        example='there should be 1 messages in "mq" target "orders:created"')
    add(f"message from {R} target {R} should look like", message_contains, payload=DOCSTRING,
        group="Message assertions", description="Alias of `message from ... should contain`",
        example='message from "mq" target "orders:created" should look like')
    add(f"the message from {R} target {R} should look like", message_contains, payload=DOCSTRING,
        group="Message assertions", description="Alias of `message from ... should contain`",
        example='the message from "mq" target "orders:created" should look like')
