from crm_rbac.platform.security.context import RBACUser
from crm_rbac.platform.security.directory import DirectoryClient, DirectoryResolver
from crm_rbac.platform.security.errors import AuthorizationError, PolicyDenied, ReportingCycleError
from crm_rbac.platform.security.filters import NO_ACCESS, And, Eq, Filter, In, evaluate
from crm_rbac.platform.security.guard import DenialReason, RecordAccessGuard
from crm_rbac.platform.security.ownership import OwnershipFilterCompiler
from crm_rbac.platform.security.permissions import PermissionChecker
from crm_rbac.platform.security.policies import AccessPolicy, Action, ResourceType, get_access_policy
from crm_rbac.platform.security.roles import Role, normalize_role

__all__ = [
    "RBACUser",
    "DirectoryClient",
    "DirectoryResolver",
    "AuthorizationError",
    "PolicyDenied",
    "ReportingCycleError",
    "NO_ACCESS",
    "And",
    "Eq",
    "Filter",
    "In",
    "evaluate",
    "DenialReason",
    "RecordAccessGuard",
    "OwnershipFilterCompiler",
    "PermissionChecker",
    "AccessPolicy",
    "Action",
    "ResourceType",
    "get_access_policy",
    "Role",
    "normalize_role",
]
