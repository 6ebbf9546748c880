"""
rollcall.services.access — Authorization gate
==============================================

Who may manage a unit/detail is decided outside this package.  Services
receive an :class:`Authorizer` and call :func:`require_manage` before any
category-scoped read or write.
"""

from __future__ import annotations

import logging
from typing import Protocol

from rollcall.errors import Forbidden

logger = logging.getLogger(__name__)


class Authorizer(Protocol):
    def can_manage(self, actor_id: int, category_type: str, category_id: int) -> bool: ...


class AllowAll:
    """Authorizer that grants everything.  For scripts and tests."""

    def can_manage(self, actor_id: int, category_type: str, category_id: int) -> bool:
        return True


def require_manage(
    authorizer: Authorizer, actor_id: int, category_type: str, category_id: int,
) -> None:
    """Raise :class:`~rollcall.errors.Forbidden` unless *actor_id* may manage the category."""
    if not authorizer.can_manage(actor_id, category_type, category_id):
        logger.warning(
            "Actor %s denied management of %s:%d", actor_id, category_type, category_id,
        )
        raise Forbidden(f"Not allowed to manage {category_type}:{category_id}")
