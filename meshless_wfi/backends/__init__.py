"""
Backend registry.

Only the CPU backend (multiprocessing + optional Numba kernels) exists;
the registry keeps backend selection by name in one place.
"""
from .base import IntegrationBackend
from .cpu import CPUBackend


def list_backends():
    """List all available backends with their status."""
    cpu = CPUBackend()
    return [('CPU', cpu.get_name(), cpu.is_available())]


def get_backend(name: str, n_workers=None, use_numba: bool = True) -> IntegrationBackend:
    """Get a specific backend by name.

    Args:
        name: 'cpu' or 'auto'

    Returns:
        IntegrationBackend instance

    Raises:
        ValueError if backend not available
    """
    name = name.lower()

    if name in ('cpu', 'auto'):
        return CPUBackend(n_workers=n_workers, use_numba=use_numba)
    raise ValueError(f"Unknown backend: {name}. Choose from: cpu, auto")
