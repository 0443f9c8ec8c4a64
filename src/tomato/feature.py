from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Tuple, Union

from tomato.exception import ConfigError
from tomato.steps.base import DataTable, DocString

log = logging.getLogger("tomato.feature")

FEATURE_SUFFIX = ".feature"


@dataclass(frozen=True)
class Step:
    text: str
    keyword: str = ""
    line: int = 0
    argument: Union[DocString, DataTable, None] = None


@dataclass(frozen=True)
class Scenario:
    name: str
    steps: Tuple[Step, ...]
    tags: Tuple[str, ...] = ()
    line: int = 0


@dataclass(frozen=True)
class Feature:
    name: str
    path: str
    scenarios: Tuple[Scenario, ...] = field(default_factory=tuple)


def discover(paths: Iterable[str]) -> List[str]:
    """Expand feature paths: files are taken as-is, directories are walked for *.feature.

    Directory results are sorted so runs are reproducible.
    """
    out: List[str] = []
    seen = set()
    for p in paths:
        if os.path.isfile(p):
            found = [p]
        elif os.path.isdir(p):
            found = []
            for root, dirs, files in os.walk(p):
                dirs.sort()
                found.extend(os.path.join(root, f) for f in sorted(files) if f.endswith(FEATURE_SUFFIX))
        else:
            raise ConfigError(f"feature path does not exist: {p}")
        for f in found:
            key = os.path.abspath(f)
            if key not in seen:
                seen.add(key)
                out.append(f)
    return out


def _argument(raw: Optional[Dict[str, Any]]) -> Union[DocString, DataTable, None]:
    if not raw:
        return None
    if "docString" in raw:
        ds = raw["docString"]
        return DocString(content=ds.get("content", ""), media_type=ds.get("mediaType"))
    if "dataTable" in raw:
        rows = [[c.get("value", "") for c in r.get("cells", [])] for r in raw["dataTable"].get("rows", [])]
        return DataTable.from_cells(rows)
    return None


def _ast_index(node: Any, index: Dict[str, Tuple[str, int]]) -> None:
    """Map AST node ids to (keyword, line) so pickles can report where a step came from."""
    if isinstance(node, dict):
        if "id" in node and "location" in node:
            index[node["id"]] = (str(node.get("keyword", "")).strip(), int(node["location"].get("line", 0)))
        for v in node.values():
            _ast_index(v, index)
    elif isinstance(node, list):
        for v in node:
            _ast_index(v, index)


def parse_feature(path: str, text: Optional[str] = None) -> Feature:
    """Parse one feature file into scenarios (outlines expanded, backgrounds inlined)."""
    from gherkin.errors import ParserError
    from gherkin.parser import Parser
    from gherkin.pickles.compiler import Compiler

    if text is None:
        try:
            with open(path, "r", encoding="utf-8") as f:
                text = f.read()
        except OSError as e:
            raise ConfigError(f"cannot read feature file {path}: {e}") from e

    try:
        doc = Parser().parse(text)
    except ParserError as e:
        raise ConfigError(f"invalid feature file {path}: {e}") from e

    feature = doc.get("feature")
    if not feature:
        log.debug("feature file %s has no feature", path)
        return Feature(name="", path=path)

    doc["uri"] = path
    index: Dict[str, Tuple[str, int]] = {}
    _ast_index(feature, index)

    scenarios: List[Scenario] = []
    for pickle in Compiler().compile(doc):
        steps = []
        for ps in pickle.get("steps", []):
            ids = ps.get("astNodeIds") or []
            keyword, line = index.get(ids[0], ("", 0)) if ids else ("", 0)
            steps.append(Step(text=ps["text"], keyword=keyword, line=line, argument=_argument(ps.get("argument"))))
        ids = pickle.get("astNodeIds") or []
        scenarios.append(
            Scenario(
                name=pickle.get("name", ""),
                steps=tuple(steps),
                tags=tuple(t.get("name", "") for t in pickle.get("tags", [])),
                line=index.get(ids[0], ("", 0))[1] if ids else 0,
            )
        )
    return Feature(name=feature.get("name", ""), path=path, scenarios=tuple(scenarios))


def load_features(paths: Iterable[str]) -> List[Feature]:
    return [parse_feature(p) for p in discover(paths)]
