"""Built-in step handlers, one module per capability.

Handlers take the ResourceManager first, then the step's captures, then the
DocString content or table rows when the pattern carries a payload.
"""

from __future__ import annotations

from tomato.registry.steps import StepRegistry


def register_all(registry: StepRegistry) -> None:
    from tomato.builtins.steps import cache, filestore, http_client, http_server, queue, shell, sql

    for module in (http_client, http_server, sql, queue, cache, shell, filestore):
        module.register_all(registry)
