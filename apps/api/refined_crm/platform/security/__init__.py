from refined_crm.platform.security.context import AuthContext
from refined_crm.platform.security.errors import (
    AdminVectorImmutable,
    AuthorizationError,
    Forbidden,
    InvalidTransition,
    MatrixInvariantError,
    MatrixVersionConflict,
    OwnershipViolation,
    RestrictedFieldViolation,
    Unauthenticated,
)
from refined_crm.platform.security.finalization import ConversionStatus, FinalizationStatus
from refined_crm.platform.security.guard import (
    Allow,
    Deny,
    authorize_author_or_admin,
    authorize_company_delete,
    authorize_company_write,
    authorize_finalize,
    authorize_operation,
    authorize_work_item_update,
    decide,
    require_actor,
)
from refined_crm.platform.security.matrix import PermissionMatrix, get_permission_matrix
from refined_crm.platform.security.policies import RoleGroup, get_permissions, has_permission, is_in_group
from refined_crm.platform.security.rls import apply_company_visibility, can_view_company
from refined_crm.platform.security.roles import Capability, PermissionVector, Role

__all__ = [
    "AuthContext",
    "AuthorizationError",
    "Unauthenticated",
    "Forbidden",
    "InvalidTransition",
    "OwnershipViolation",
    "RestrictedFieldViolation",
    "MatrixInvariantError",
    "AdminVectorImmutable",
    "MatrixVersionConflict",
    "ConversionStatus",
    "FinalizationStatus",
    "Allow",
    "Deny",
    "decide",
    "require_actor",
    "authorize_operation",
    "authorize_work_item_update",
    "authorize_author_or_admin",
    "authorize_company_write",
    "authorize_company_delete",
    "authorize_finalize",
    "PermissionMatrix",
    "get_permission_matrix",
    "RoleGroup",
    "get_permissions",
    "has_permission",
    "is_in_group",
    "apply_company_visibility",
    "can_view_company",
    "Role",
    "Capability",
    "PermissionVector",
]
