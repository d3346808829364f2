"""Router package exports."""

from . import config, contests, health, problems, review

__all__ = [
    "config",
    "contests",
    "health",
    "problems",
    "review",
]
