from __future__ import annotations

import shlex
from functools import partial

from tomato.exception import StepAssertion, TomatoError
from tomato.registry.steps import StepRegistry
from tomato.spec import SHELL

R = r'"([^"]*)"'


def execute(resources, name: str, command: str) -> None:
    try:
        argv = shlex.split(command)
    except ValueError as e:
        raise TomatoError(f"invalid command {command!r}: {e}") from e
    if not argv:
        raise TomatoError("empty command")
    resources.shell(name).exec(argv[0], *argv[1:])


def _output(resources, name: str, stream: str) -> str:
    sh = resources.shell(name)
    return sh.stdout() if stream == "stdout" else sh.stderr()


def output_contains(resources, name: str, stream: str, text: str) -> None:
    out = _output(resources, name, stream)
    if text not in out:
        raise StepAssertion(f"{stream} is not contains `{text}`", {f"{stream} actual output": out})


def output_not_contains(resources, name: str, stream: str, text: str) -> None:
    out = _output(resources, name, stream)
    if text in out:
        raise StepAssertion(f"{stream} is contains `{text}`", {f"{stream} actual output": out})


def exit_code_equal(resources, name: str, expected: int) -> None:
    code = resources.shell(name).exit_code()
    if code != expected:
        raise StepAssertion(f"expecting exit code to be {expected}, got {code}")


def exit_code_not_equal(resources, name: str, unexpected: int) -> None:
    code = resources.shell(name).exit_code()
    if code == unexpected:
        raise StepAssertion(f"expecting exit code not to be {unexpected}, got {code}")


def register_all(registry: StepRegistry) -> None:
    add = partial(registry.add, capability=SHELL)

    add(f"{R} execute {R}", execute,
        group="Commands", description="Run a command to completion",
        example='"sh" execute "echo hello"')
    add(f"{R} (stdout|stderr) should contains {R}", output_contains,
        group="Output assertions", description="Assert stdout or stderr contains text",
        example='"sh" stdout should contains "hello"')
    add(f"{R} (stdout|stderr) should not contains {R}", output_not_contains,
        group="Output assertions", description="Assert stdout or stderr does not contain text",
        example='"sh" stderr should not contains "error"')
    add(rf"{R} exit code equal to (\d+)", exit_code_equal, types=(str, int),
        group="Exit code assertions", description="Assert the exit code",
        example='"sh" exit code equal to 0')
    add(rf"{R} exit code not equal to (\d+)", exit_code_not_equal, types=(str, int),
        group="Exit code assertions", description="Assert the exit code differs",
        example='"sh" exit code not equal to 1')
