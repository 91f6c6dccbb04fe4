"""Repository layer for typed store access"""

from .base import BaseRepository
from .connected_repository import ConnectedRepositoryRepository
from .job import JobRepository, JobResultRepository
from .user_profile import UserProfileRepository

__all__ = [
    "BaseRepository",
    "ConnectedRepositoryRepository",
    "JobRepository",
    "JobResultRepository",
    "UserProfileRepository",
]
