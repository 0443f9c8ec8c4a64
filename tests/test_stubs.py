from __future__ import annotations

import pytest

from tomato.exception import ConfigError, StubNotFound
from tomato.stubs import Stubs


def test_loads_files_recursively_by_name(temp_dir):
    (temp_dir / "users").mkdir()
    (temp_dir / "ok.json").write_bytes(b'{"ok": true}')
    (temp_dir / "users" / "bob.json").write_bytes(b'{"name": "bob"}')

    stubs = Stubs.load(temp_dir)

    assert stubs.names() == ["bob.json", "ok.json"]
    assert stubs.get("bob.json") == b'{"name": "bob"}'
    assert "ok.json" in stubs
    assert len(stubs) == 2


def test_missing_stub_lists_available(temp_dir):
    (temp_dir / "ok.json").write_bytes(b"{}")

    with pytest.raises(StubNotFound) as ei:
        Stubs.load(temp_dir).get("nope.json")

    assert "no stubs loaded with name: nope.json available: ok.json" in str(ei.value)


def test_duplicate_names_are_rejected(temp_dir):
    for sub in ("a", "b"):
        (temp_dir / sub).mkdir()
        (temp_dir / sub / "same.json").write_bytes(b"{}")

    with pytest.raises(ConfigError, match="duplicate stub name 'same.json'"):
        Stubs.load(temp_dir)


def test_stubs_path_must_be_directory(temp_dir):
    with pytest.raises(ConfigError, match="stubs_path is not a directory"):
        Stubs.load(temp_dir / "missing")
