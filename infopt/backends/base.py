"""
Base backend interface.
"""

from abc import ABC, abstractmethod

from infopt.model import InfiniteModel


class Backend(ABC):
    """
    Abstract base class for all backends.

    A backend converts the finite part of an InfiniteModel (after measures
    are expanded and derivatives evaluated) into a specific symbolic
    framework.
    """

    def __init__(self, model: InfiniteModel) -> None:
        """
        Initialize the backend with a model.

        Args:
            model: The model to compile
        """
        self.model = model
        self._compiled = False

    @abstractmethod
    def compile(self) -> None:
        """Translate the model's constraints and objective."""
        pass

    @abstractmethod
    def to_backend(self, expr):
        """Convert one expression of the model."""
        pass
