# govision/repository/__init__.py
from .base import ResultRepository
from .memory import InMemoryResultRepository
from .sqlalchemy_repository import SqlAlchemyResultRepository

__all__ = ["ResultRepository", "InMemoryResultRepository", "SqlAlchemyResultRepository"]
