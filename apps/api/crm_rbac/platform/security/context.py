from __future__ import annotations

from dataclasses import dataclass

from crm_rbac.platform.security.roles import Role, normalize_role


@dataclass(frozen=True, slots=True)
class RBACUser:
    """The requesting user as seen by access checks.

    ``role`` is kept as given. Use :attr:`tier` to branch on it; an
    unrecognized role yields ``None`` and is denied everywhere.
    """

    user_id: str
    tenant_id: str
    role: str
    email: str = ""
    reporting_to: str | None = None
    correlation_id: str | None = None

    @property
    def tier(self) -> Role | None:
        return normalize_role(self.role)
