"""Repository databases and repository index loading."""

from .database import InMemoryRepositoryDatabase, RepositoryDatabase
from .packages_index import candidates_from_index
from .remote import fetch_repository_database

__all__ = [
    "InMemoryRepositoryDatabase",
    "RepositoryDatabase",
    "candidates_from_index",
    "fetch_repository_database",
]
