"""SQLAlchemy ORM models."""

from cvevault.models.base import Base
from cvevault.models.vulnerability import Vulnerability

__all__ = ["Base", "Vulnerability"]
