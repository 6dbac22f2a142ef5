"""Database utilities and models."""

from ally.db.base import Base
from ally.db import models  # noqa: F401  (imported for side effects)

__all__ = ["Base"]
