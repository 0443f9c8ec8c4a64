from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Dict, List

from tomato.exception import ConfigError, StubNotFound

log = logging.getLogger("tomato.stubs")


class Stubs:
    """Read-only payloads loaded from a stubs directory, keyed by file name.

    Files are discovered recursively; two files sharing a name anywhere under
    the directory is a config error.
    """

    def __init__(self, files: Dict[str, bytes], *, path: str = "") -> None:
        self._files = dict(files)
        self.path = path

    @classmethod
    def load(cls, path: str | Path) -> "Stubs":
        root = Path(path).expanduser()
        if not root.is_dir():
            raise ConfigError(f"stubs_path is not a directory: {root}")
        files: Dict[str, bytes] = {}
        origin: Dict[str, Path] = {}
        for dirpath, _dirnames, filenames in os.walk(root):
            for fn in sorted(filenames):
                fp = Path(dirpath) / fn
                if fn in files:
                    raise ConfigError(f"duplicate stub name {fn!r}: {origin[fn]} and {fp}")
                files[fn] = fp.read_bytes()
                origin[fn] = fp
        log.debug("loaded %d stubs from %s", len(files), root)
        return cls(files, path=str(root))

    def get(self, name: str) -> bytes:
        if name not in self._files:
            raise StubNotFound(f"no stubs loaded with name: {name} available: {', '.join(self.names())}")
        return self._files[name]

    def names(self) -> List[str]:
        return sorted(self._files)

    def __contains__(self, name: object) -> bool:
        return name in self._files

    def __len__(self) -> int:
        return len(self._files)
