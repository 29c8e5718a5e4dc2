"""Computational backends for BCa analyses."""

from pybcaboot.bca.backends.cpu import CPUBCaBackend

__all__ = ["CPUBCaBackend"]
