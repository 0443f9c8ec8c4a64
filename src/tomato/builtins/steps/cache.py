from __future__ import annotations

from functools import partial

from tomato.exception import StepAssertion
from tomato.registry.steps import StepRegistry
from tomato.spec import CACHE

R = r'"([^"]*)"'


def store(resources, name: str, key: str, value: str) -> None:
    resources.cache(name).set(key, value)


def stored_value(resources, name: str, key: str, expected: str) -> None:
    actual = resources.cache(name).get(key)
    if actual != expected:
        raise StepAssertion(
            "unable to find correct value in cache",
            {"expected value": expected, "cached value": "" if actual is None else actual},
        )


def has_key(resources, name: str, key: str) -> None:
    if not resources.cache(name).exists(key):
        raise StepAssertion("unable to find value in cache", {"expected": "exists", "actual": "not exists"})


def hasnt_key(resources, name: str, key: str) -> None:
    if resources.cache(name).exists(key):
        raise StepAssertion("found value in cache", {"expected": "not exists", "actual": "exists"})


def register_all(registry: StepRegistry) -> None:
    add = partial(registry.add, capability=CACHE)

    add(f"cache {R} stores {R} with value {R}", store,
        group="Values", description="Store a value under a key",
        example='cache "redis" stores "user:1" with value "bob"')
    add(f"cache {R} stored key {R} should look like {R}", stored_value,
        group="Value assertions", description="Assert the value stored under a key",
        example='cache "redis" stored key "user:1" should look like "bob"')
    add(f"cache {R} has key {R}", has_key,
        group="Value assertions", description="Assert a key exists",
        example='cache "redis" has key "user:1"')
    add(f"cache {R} hasn't key {R}", hasnt_key,
        group="Value assertions", description="Assert a key does not exist",
        example='cache "redis" hasn\'t key "user:2"')
