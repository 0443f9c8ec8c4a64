from __future__ import annotations

import logging
import shlex
import subprocess
from typing import List, Optional

from tomato.exception import DriverError
from tomato.resources.base import ResourceInit, _Base

log = logging.getLogger("tomato.builtins.drivers.shell")


class LocalShell(_Base):
    """Runs commands to completion, capturing stdout, stderr and the exit code.

    `prefix` is prepended to every command (e.g. `docker exec app`).
    """

    PARAMS = frozenset({"prefix", "timeout"})

    def __init__(self, init: ResourceInit):
        super().__init__(init)
        self._prefix: List[str] = shlex.split(self.param("prefix", "") or "")
        self._timeout: Optional[float] = self.duration("timeout")
        self._stdout = ""
        self._stderr = ""
        self._exit_code = 0

    def reset(self) -> None:
        self._stdout = ""
        self._stderr = ""
        self._exit_code = 0

    def exec(self, command: str, *args: str) -> None:
        argv = [*self._prefix, command, *args]
        log.debug("shell %s exec argv=%s", self.name, argv)
        try:
            p = subprocess.run(
                argv,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                timeout=self._timeout,
                check=False,
            )
        except subprocess.TimeoutExpired as e:
            raise DriverError(f"command timed out after {self._timeout:g}s: {' '.join(argv)}",
                              frames=[self.name, "exec"]) from e
        except OSError as e:
            raise self._fail("exec", e) from e
        self._stdout = p.stdout.decode("utf-8", errors="replace")
        self._stderr = p.stderr.decode("utf-8", errors="replace")
        self._exit_code = p.returncode

    def stdout(self) -> str:
        return self._stdout

    def stderr(self) -> str:
        return self._stderr

    def exit_code(self) -> int:
        return self._exit_code
