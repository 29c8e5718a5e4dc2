"""
Shared compute infrastructure for pybcaboot.

Domain-specific backends live in {domain}/backends/. This module holds
numeric infrastructure shared across them.

Submodules:
    timing: Execution timing utilities
"""

from pybcaboot.core.compute.timing import Timer

__all__ = [
    "Timer",
]
