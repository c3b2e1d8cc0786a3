from __future__ import annotations


class AuthorizationError(Exception):
    """Base authorization error for policy and ownership enforcement failures."""


class PolicyDenied(AuthorizationError):
    """Raised when a role lacks a capability on a resource type outright."""

    def __init__(self, role: str, action: str, resource_type: str) -> None:
        self.role = role
        self.action = action
        self.resource_type = resource_type
        super().__init__(f"Role '{role}' may not {action} resource '{resource_type}'")


class ReportingCycleError(ValueError):
    """Raised when a reporting-line change would be invalid or form a cycle."""

    def __init__(self, user_id: str, manager_id: str, reason: str) -> None:
        self.user_id = user_id
        self.manager_id = manager_id
        self.reason = reason
        super().__init__(f"User '{user_id}' cannot report to '{manager_id}': {reason}")
