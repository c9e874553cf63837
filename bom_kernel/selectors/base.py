"""
Module: bom_kernel.selectors.base
Responsibility: Abstract base class for all read-only query selectors.  Selectors
    form the "Q" side of the kernel, providing structured read access to parts
    and their collections without mutation capability.
Architecture position: Kernel > Selectors.  May import from db/, models/ and
    domain/ (DTOs).  MUST NOT import from services/ or outer layers.

Invariants enforced:
    - Read-only access: Selectors accept a Session from the caller but MUST NOT
      call session.add(), session.delete(), session.commit(), or session.flush().
    - DTO return convention: Selectors return frozen dataclasses, NOT raw ORM
      model instances.
    - Soft-delete opacity: rows of soft-deleted parts are never returned.

Failure modes:
    - Absence is reported as None / empty tuple, never as an exception.  The
      service layer turns a missing part into PartNotFoundError.
"""

from abc import ABC
from typing import Generic, TypeVar

from sqlalchemy.orm import Session

from bom_kernel.db.base import Base

ModelType = TypeVar("ModelType", bound=Base)


class BaseSelector(ABC, Generic[ModelType]):
    """
    Abstract base class for all selectors.

    Guarantees:
        - session is stored as a public attribute for subclass query use.
        - No commit, flush, add, or delete operations are performed.
    """

    def __init__(self, session: Session):
        self.session = session
