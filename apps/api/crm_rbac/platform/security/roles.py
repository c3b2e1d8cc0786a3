from __future__ import annotations

from enum import StrEnum


class Role(StrEnum):
    ADMIN = "ADMIN"
    SALES_MANAGER = "SALES_MANAGER"
    SALES_REP = "SALES_REP"


_ROLE_ALIASES: dict[str, Role] = {
    "admin": Role.ADMIN,
    "super_admin": Role.ADMIN,
    "manager": Role.SALES_MANAGER,
    "sales_manager": Role.SALES_MANAGER,
    "rep": Role.SALES_REP,
    "sales_rep": Role.SALES_REP,
}


def normalize_role(raw_role: str | None) -> Role | None:
    """Map any known role spelling onto the three-tier hierarchy.

    Both the uppercase (``SALES_MANAGER``) and the legacy lowercase
    (``manager``) spellings are accepted. Anything else returns ``None``,
    which every access check treats as "no capability at all".
    """

    key = str(raw_role or "").strip().lower()
    return _ROLE_ALIASES.get(key)
