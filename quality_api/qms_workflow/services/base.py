from __future__ import annotations

from datetime import datetime, timezone
from typing import Callable, Optional

from qms_workflow.repositories.unit_of_work import UnitOfWorkFactory


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class BaseService:
    """
    Base class for services. Holds the unit-of-work factory used to open one
    transaction per operation.

    Services should keep business logic and orchestration, delegating data access
    to repositories.
    """

    def __init__(self, uow_factory: UnitOfWorkFactory, clock: Optional[Callable[[], datetime]] = None) -> None:
        self.uow_factory = uow_factory
        self.clock = clock or utc_now
