from __future__ import annotations

import io
import sys
import textwrap

import pytest

from tomato.builtins.drivers.shell import LocalShell
from tomato.exception import DriverError
from tomato.observability import EVENT_PREFIX
from tomato.resources.base import ResourceInit
from tomato.runner import run_suite
from tomato.spec import SHELL


def _shell(**params) -> LocalShell:
    return LocalShell(ResourceInit(name="sh", type=SHELL, driver="local", params=params))


def test_exec_captures_streams_and_exit_code():
    sh = _shell()

    sh.exec(sys.executable, "-c", "import sys; print('out'); sys.stderr.write('err'); sys.exit(3)")

    assert sh.stdout() == "out\n"
    assert sh.stderr() == "err"
    assert sh.exit_code() == 3

    sh.reset()
    assert (sh.stdout(), sh.stderr(), sh.exit_code()) == ("", "", 0)


def test_missing_binary_is_driver_error():
    with pytest.raises(DriverError) as ei:
        _shell().exec("tomato-no-such-binary")

    assert str(ei.value).startswith("sh: exec: ")


def test_timeout_is_driver_error():
    sh = _shell(timeout="200ms")

    with pytest.raises(DriverError, match="command timed out after 0.2s"):
        sh.exec(sys.executable, "-c", "import time; time.sleep(5)")


def test_shell_steps_through_runner(temp_dir, registries, settings):
    py = sys.executable
    (temp_dir / "shell.feature").write_text(
        textwrap.dedent(
            f"""
            Feature: shell

              Scenario: streams and exit codes
                Given "sh" execute "{py} -c 'import sys; print(42); sys.stderr.write(chr(33)); sys.exit(3)'"
                Then "sh" stdout should contains "42"
                And "sh" stderr should contains "!"
                And "sh" stdout should not contains "43"
                And "sh" exit code equal to 3
                And "sh" exit code not equal to 0

              Scenario: failing assertion
                Given "sh" execute "{py} -c 'print(1)'"
                Then "sh" stdout should contains "2"
            """
        ),
        encoding="utf-8",
    )
    config = temp_dir / "tomato.yml"
    config.write_text("features_path: shell.feature\nresources:\n  - name: sh\n    type: shell\n", encoding="utf-8")
    drivers, steps = registries
    out = io.StringIO()

    summary = run_suite(config, settings=settings, env={}, out=out, drivers=drivers, steps=steps)

    assert summary.scenarios_passed == 1
    assert summary.scenarios_failed == 1
    failed = [l for l in out.getvalue().splitlines() if l.startswith(EVENT_PREFIX) and '"step_end"' in l and '"failed"' in l]
    assert len(failed) == 1
    assert "stdout is not contains `2`" in failed[0]
