"""Role-based access control for invoice operations.

``allowed`` is a pure lookup against ``PERMISSIONS``. ``require_operation``
wraps it in a FastAPI dependency so the check runs before the route body and
therefore before any invoice data is read or written.
"""

from enum import Enum
from typing import Callable, Dict, FrozenSet

import structlog
from fastapi import Depends, Request

from invoice_backend.app.core.errors import AccessDenied
from invoice_backend.app.core.identity import Identity, get_identity

LOGGER = structlog.get_logger(__name__)


class Role(str, Enum):
    ADMIN = "Admin"
    MANAGER = "Manager"
    DRIVER = "Driver"


class Operation(str, Enum):
    LIST_INVOICES = "list_invoices"
    VIEW_INVOICE = "view_invoice"
    CREATE_INVOICE = "create_invoice"
    UPDATE_INVOICE = "update_invoice"
    EDIT_ITEMS = "edit_items"
    SUBMIT = "submit"
    APPROVE = "approve"
    REJECT = "reject"
    REOPEN = "reopen"
    DOWNLOAD_PDF = "download_pdf"


_READERS = frozenset({Role.ADMIN.value, Role.MANAGER.value, Role.DRIVER.value})
_EDITORS = frozenset({Role.MANAGER.value, Role.ADMIN.value})

PERMISSIONS: Dict[Operation, FrozenSet[str]] = {
    Operation.LIST_INVOICES: _READERS,
    Operation.VIEW_INVOICE: _READERS,
    Operation.DOWNLOAD_PDF: _READERS,
    Operation.CREATE_INVOICE: _EDITORS,
    Operation.UPDATE_INVOICE: _EDITORS,
    Operation.EDIT_ITEMS: _EDITORS,
    Operation.SUBMIT: _EDITORS,
    Operation.APPROVE: _EDITORS,
    Operation.REJECT: _EDITORS,
    Operation.REOPEN: _EDITORS,
}

# Roles that only ever see invoices they created themselves.
CREATOR_SCOPED_ROLES = frozenset({Role.DRIVER.value})


def allowed(role: str, operation: Operation) -> bool:
    return role in PERMISSIONS.get(operation, frozenset())


def is_creator_scoped(identity: Identity) -> bool:
    return identity.role in CREATOR_SCOPED_ROLES


def require(identity: Identity, operation: Operation) -> Identity:
    if not allowed(identity.role, operation):
        raise AccessDenied(required=PERMISSIONS.get(operation, frozenset()), current=identity.role)
    return identity


def require_operation(operation: Operation) -> Callable[..., Identity]:
    def dependency(request: Request, identity: Identity = Depends(get_identity)) -> Identity:
        try:
            return require(identity, operation)
        except AccessDenied:
            LOGGER.warning(
                "access_denied",
                user_role=identity.role,
                operation=operation.value,
                path=request.url.path,
            )
            raise

    return dependency
