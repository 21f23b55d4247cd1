from abc import ABC, abstractmethod
from typing import List, Optional
from detection.models import DetectionRecord

class DetectionResultStore(ABC):
    """
    Abstract interface for storing detection runs.
    Best-effort from the detector's point of view: it never waits on it.
    """

    @abstractmethod
    def is_enabled(self) -> bool:
        """True if the backing schema exists and writes can be attempted."""
        pass

    @abstractmethod
    def save(self, record: DetectionRecord) -> None:
        """Persist one detection record."""
        pass

    @abstractmethod
    def get_latest(self, identity_context: str, domain: str) -> Optional[DetectionRecord]:
        """Most recent detection of a domain for one user."""
        pass

    @abstractmethod
    def list_for_user(self, identity_context: str, limit: int = 50) -> List[DetectionRecord]:
        """Recent detections for one user, newest first."""
        pass
