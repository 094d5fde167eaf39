"""Abstract base class for integration backends."""
from abc import ABC, abstractmethod


class IntegrationBackend(ABC):
    """Abstract interface for background-mesh integration backends.

    The integration engine calls integrate_cells() for the volume pass and
    integrate_surfaces() for the surface pass; each returns one merged
    IntegralAccumulator covering every point.
    """

    @abstractmethod
    def integrate_cells(self, context):
        """Volume pass over all background cells of ``context``.

        Args:
            context: IntegrationContext with cells, functions and materials

        Returns:
            IntegralAccumulator with the summed cell contributions
        """
        pass

    @abstractmethod
    def integrate_surfaces(self, context):
        """Surface pass over all boundary faces of ``context``."""
        pass

    @abstractmethod
    def get_name(self) -> str:
        """Human-readable backend name, e.g. 'CPU (8 cores, Numba JIT)'."""
        pass

    @abstractmethod
    def is_available(self) -> bool:
        """Check if this backend's hardware/libraries are available."""
        pass
