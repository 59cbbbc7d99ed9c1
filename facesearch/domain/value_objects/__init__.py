"""Value objects package."""
from .recognition import FaceMatch, RegenerationReport

__all__ = ["FaceMatch", "RegenerationReport"]
