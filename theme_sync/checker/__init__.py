"""Theme configuration validation.

This module provides:
- ConfigChecker: Lints the files under <theme>/config
- print_results / run_config_check: Console report for `tiendanube check`
"""

from theme_sync.checker.config_checker import (
    ConfigChecker,
    ValidationIssue,
    ValidationResults,
    print_results,
    run_config_check,
)

__all__ = [
    "ConfigChecker",
    "ValidationIssue",
    "ValidationResults",
    "print_results",
    "run_config_check",
]
