#Marks storage as a package.
#Re-exports the repository boundary so other modules do not depend on file names.
#No business logic.

from .repository import (
    Repository,
    InMemoryRepository,
    Subscription,
    RepositoryError,
    DocumentNotFound,
)
from .cache import TTLCache

__all__ = [
    "Repository",
    "InMemoryRepository",
    "Subscription",
    "RepositoryError",
    "DocumentNotFound",
    "TTLCache",
]
