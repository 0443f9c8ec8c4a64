from __future__ import annotations

import json
from functools import partial
from typing import Dict, List

from tomato.compare import strip_wildcards
from tomato.exception import StepAssertion
from tomato.registry.steps import StepRegistry
from tomato.spec import SQL
from tomato.steps.base import TABLE

R = r'"([^"]*)"'


def table_empty(resources, name: str, table: str) -> None:
    resources.sql(name).delete(table, {})


def table_insert(resources, name: str, table: str, rows: List[Dict[str, str]]) -> None:
    resources.sql(name).insert(table, rows)


def table_compare(resources, name: str, table: str, rows: List[Dict[str, str]]) -> None:
    """Each expected row must select at least one actual row; `*` cells match anything."""
    store = resources.sql(name)
    for row in rows:
        cond = strip_wildcards(row)
        if store.select(table, cond):
            continue
        actual = store.select(table, {})
        raise StepAssertion(
            f"unable to find rows in table `{table}`",
            {
                "expected row": json.dumps(cond, indent=4),
                "table values": json.dumps(actual, indent=4, default=str),
            },
        )


def register_all(registry: StepRegistry) -> None:
    add = partial(registry.add, capability=SQL)

    add(f"set {R} table {R} to empty", table_empty,
        group="Tables", description="Delete every row of a table",
        example='set "db" table "users" to empty')
    add(f"set {R} table {R} list of content", table_insert, payload=TABLE,
        group="Tables", description="Insert the table rows (empty or null cells are left unset)",
        example='set "db" table "users" list of content')
    add(f"{R} table {R} should look like", table_compare, payload=TABLE,
        group="Table assertions", description="Assert every row exists in the table",
        example='"db" table "users" should look like')

    add(f"{R} {R} contains the (?:rows|row)", table_insert, payload=TABLE,
        group="Tables", description="Alias of `set ... table ... list of content`",
        example='"db" "users" contains the rows')
    add(f"{R} {R} should contain the (?:rows|row)", table_compare, payload=TABLE,
        group="Table assertions", description="Alias of `... table ... should look like`",
        example='"db" "users" should contain the rows')
