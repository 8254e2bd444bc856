from __future__ import annotations

from dataclasses import dataclass

PRIVILEGED_ROLES = frozenset({"admin", "superadmin"})


@dataclass(frozen=True)
class TenantContext:
    """
    Per-request identity resolved from the session token.

    Attached to:
    - request.state (FastAPI request lifetime)
    - Session.info (SQLAlchemy session lifetime, read by `cargo_api.db.filters`)
    """

    tenant_id: str
    tenant_code: str | None
    user_id: str
    username: str
    role: str
    branch_id: str | None

    @property
    def is_privileged(self) -> bool:
        return self.role in PRIVILEGED_ROLES

    def to_dict(self) -> dict[str, object]:
        return {
            "tenant_id": self.tenant_id,
            "tenant_code": self.tenant_code,
            "user_id": self.user_id,
            "username": self.username,
            "role": self.role,
            "branch_id": self.branch_id,
        }
