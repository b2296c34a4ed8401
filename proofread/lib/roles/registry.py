from __future__ import annotations

import logging
from typing import Iterator

from .types import BaseRole

logger = logging.getLogger(__name__)


class RoleRegistry:
    """ロール ID からロール実装を引くための登録簿。"""

    def __init__(self) -> None:
        self._roles: dict[str, BaseRole] = {}

    def register(self, role: BaseRole, *, replace: bool = False) -> bool:
        """ロールを登録する。既に同じ ID があれば ``replace`` が偽の限り何もしない。"""

        if role.id in self._roles and not replace:
            return False
        self._roles[role.id] = role
        logger.debug("role_registered: id=%s streaming=%s", role.id, role.streaming)
        return True

    def get(self, role_id: str) -> BaseRole | None:
        return self._roles.get(role_id)

    def list_roles(self) -> list[BaseRole]:
        return list(self._roles.values())

    def __contains__(self, role_id: object) -> bool:
        return role_id in self._roles

    def __iter__(self) -> Iterator[BaseRole]:
        return iter(list(self._roles.values()))

    def __len__(self) -> int:
        return len(self._roles)


__all__ = ["RoleRegistry"]
