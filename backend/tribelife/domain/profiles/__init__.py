"""Profile directory exports."""

from .directory import ProfileDirectory
from .models import Profile

__all__ = ["Profile", "ProfileDirectory"]
