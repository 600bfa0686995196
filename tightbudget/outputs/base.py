from abc import ABC, abstractmethod

class BaseOutput(ABC):
    @abstractmethod
    def append(self, transactions):
        """Write generated transactions to the chosen sink."""
        pass
