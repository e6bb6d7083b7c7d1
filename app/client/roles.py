from __future__ import annotations

import logging

from ..core.errors import AssetTrackError
from ..core.permissions import ADMIN_ROLE
from .ports import RecordStore

logger = logging.getLogger(__name__)


class RoleResolver:
    """Answers "is this principal an administrator?" and never raises.

    Any lookup failure counts as "not an administrator"; the store still
    enforces its own policy on every write.
    """

    def __init__(self, store: RecordStore) -> None:
        self.store = store

    async def resolve(self, principal_id: str) -> bool:
        try:
            grants = await self.store.select_user_roles(principal_id, ADMIN_ROLE)
        except AssetTrackError as exc:
            logger.warning(
                "roles.lookup_failed",
                extra={"extra_data": {"user_id": principal_id, "error": exc.message}},
            )
            return False
        return any(grant.role == ADMIN_ROLE for grant in grants)
