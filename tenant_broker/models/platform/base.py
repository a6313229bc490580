"""
Platform Base Model
Provides common columns for all control-plane models
"""

import uuid
from datetime import datetime

from sqlalchemy import Column, DateTime, String
from sqlalchemy.orm import declarative_base


def _new_id() -> str:
    return str(uuid.uuid4())


class PlatformBaseClass:
    """
    Base class for all platform models.
    Provides the id and timestamp columns.
    """

    # Allow legacy type annotations without Mapped[] wrapper
    __allow_unmapped__ = True

    id = Column(String(36), primary_key=True, default=_new_id, nullable=False)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    updated_at = Column(
        DateTime,
        default=datetime.utcnow,
        onupdate=datetime.utcnow,
        nullable=False
    )

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__}(id={self.id})>"


PlatformBase = declarative_base(cls=PlatformBaseClass)
