# src/services/authorization.py
from dataclasses import dataclass
from typing import Iterable, Optional
from ..exceptions import Forbidden

@dataclass(frozen=True)
class Caller:
    """Authenticated identity attached to every guarded operation"""
    user_id: int
    username: Optional[str] = None

class AuthorizationPolicy:
    """Admin capability check over a configured set of principals"""

    def __init__(self, admin_ids: Iterable[int]):
        self.admin_ids = frozenset(admin_ids)

    def is_admin(self, caller: Caller) -> bool:
        return caller.user_id in self.admin_ids

    def require_admin(self, caller: Caller):
        if not self.is_admin(caller):
            raise Forbidden("Forbidden: Admins only")
