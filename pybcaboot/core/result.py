"""
Generic result container for all pybcaboot computations.

The Result class is the standardized envelope every BCa analysis returns.
Shared tooling (timing, reproducibility, reporting) reads the envelope,
while the domain defines its own parameter payload.

Design decisions:
    - Generic over parameter payload P for type safety
    - info dict for flexible metadata (mode, B, n, missing counts)
    - timing is optional (don't burden unit tests)
    - provenance records library versions for reproducibility
    - Immutable (frozen=True)
"""

from dataclasses import dataclass, field
from typing import TypeVar, Generic, Any

P = TypeVar('P')  # Parameter payload type


def _default_provenance() -> dict[str, str]:
    """Version metadata attached to every Result unless overridden."""
    import numpy
    import scipy

    from pybcaboot import __version__

    return {
        'pybcaboot_version': __version__,
        'numpy_version': numpy.__version__,
        'scipy_version': scipy.__version__,
    }


@dataclass(frozen=True)
class Result(Generic[P]):
    """
    Immutable result envelope for statistical computations.

    Type Parameters:
        P: The domain-specific parameter payload type

    Attributes:
        params: Domain-specific parameters (limits, z0, acceleration, ...)
        info: Structured metadata (mode, replicate counts, diagnostics)
        timing: Execution timing breakdown, or None if not measured
        backend_name: Identifier of the backend that produced this result
        warnings: Non-fatal issues encountered during computation
        provenance: Library versions used to produce the result

    Examples:
        >>> Result(
        ...     params=BCaParams(...),
        ...     info={'mode': 'jackknife', 'B': 2000, 'n': 50},
        ...     timing={'total_seconds': 0.4, 'replicates': 0.35},
        ...     backend_name='cpu_bca'
        ... )
    """
    params: P
    info: dict[str, Any]
    timing: dict[str, float] | None
    backend_name: str
    warnings: tuple[str, ...] = field(default_factory=tuple)
    provenance: dict[str, str] = field(default_factory=_default_provenance)

    def has_warning(self, substring: str) -> bool:
        """Check if any warning contains the given substring."""
        return any(substring in w for w in self.warnings)
