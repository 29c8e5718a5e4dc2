"""
Core protocols for pybcaboot.

These define structural interfaces that designs and backends must satisfy.
We use Protocol (structural typing) rather than ABC (nominal typing) so a
caller can plug in their own backend without inheriting from anything.

Design Principles:
    - Minimal contracts: prescribe only what's truly universal
    - Capability-driven: use supports() for optional features
    - Type-safe: use generics to preserve type information through pipelines
"""

from typing import Protocol, TypeVar, Any, runtime_checkable

P = TypeVar('P')  # Parameter payload type
D = TypeVar('D')  # DataSource type


@runtime_checkable
class DataSource(Protocol):
    """
    Minimal protocol for any input container consumed by a backend.

    BCaDesign implements this protocol. The supports() method lets a
    backend ask what the design can provide without inspecting its mode.
    """

    @property
    def n_observations(self) -> int:
        """Number of statistical units (rows of the observation set)."""
        ...

    @property
    def metadata(self) -> dict[str, Any]:
        """
        Design metadata.

        Example:
            {'mode': 'jackknife', 'n': 50, 'B': 2000, 'stype': 'rows'}
        """
        ...

    def supports(self, capability: str) -> bool:
        """
        Check if this data source supports a given capability.

        Capability strings used by pybcaboot:
            'estimator': Has a callable that can be re-evaluated on resamples
            'resample_counts': Provides (or can generate) a B x n count matrix
            'sufficient_stats': Provides a B x p sufficient-statistic matrix
            'jackknife': Can compute leave-one-out estimates

        Note:
            Unknown capabilities MUST return False, never raise.
        """
        ...


@runtime_checkable
class Backend(Protocol[D, P]):
    """
    Protocol for computational backends.

    Each backend takes a validated design and produces a parameter payload
    wrapped in a Result. Backends are stateless apart from construction-time
    configuration.

    Type Parameters:
        D: The DataSource type this backend accepts
        P: The parameter payload type this backend produces
    """

    @property
    def name(self) -> str:
        """
        Backend identifier.

        Convention: '{device}_{algorithm}', e.g. 'cpu_bca'.
        """
        ...

    def solve(self, design: D) -> 'Result[P]':
        """
        Execute the computation.

        Raises:
            EstimatorFailureError: If too many estimator evaluations fail
            ValidationError: If the design is invalid for this backend
        """
        ...
