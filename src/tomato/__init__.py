"""tomato: behavioral test runner for external services.

Public entrypoints:
- tomato.runner.run_suite: run a suite programmatically
- tomato.validation.validate_suite: check a suite without touching services

Internal modules may change without notice.
"""

from __future__ import annotations

from tomato.runner import run_suite
from tomato.validation import validate_suite

__all__ = ["run_suite", "validate_suite"]
