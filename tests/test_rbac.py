import pytest

from invoice_backend.app.core.errors import AccessDenied
from invoice_backend.app.core.identity import Identity
from invoice_backend.app.core.rbac import PERMISSIONS, Operation, allowed, is_creator_scoped, require

EDIT_OPERATIONS = [
    Operation.CREATE_INVOICE,
    Operation.UPDATE_INVOICE,
    Operation.EDIT_ITEMS,
    Operation.SUBMIT,
    Operation.APPROVE,
    Operation.REJECT,
    Operation.REOPEN,
]
READ_OPERATIONS = [Operation.LIST_INVOICES, Operation.VIEW_INVOICE, Operation.DOWNLOAD_PDF]


def test_every_operation_has_a_permission_entry():
    assert set(PERMISSIONS) == set(Operation)


@pytest.mark.parametrize("operation", EDIT_OPERATIONS)
def test_edit_operations_need_manager_or_admin(operation):
    assert allowed("Manager", operation)
    assert allowed("Admin", operation)
    assert not allowed("Driver", operation)


@pytest.mark.parametrize("operation", READ_OPERATIONS)
def test_read_operations_open_to_all_roles(operation):
    for role in ("Admin", "Manager", "Driver"):
        assert allowed(role, operation)


def test_unknown_role_is_denied_everything():
    assert not any(allowed("Accountant", operation) for operation in Operation)


def test_role_match_is_case_sensitive():
    assert not allowed("manager", Operation.SUBMIT)


def test_require_raises_with_required_and_current():
    with pytest.raises(AccessDenied) as excinfo:
        require(Identity(role="Driver", email="d@example.com"), Operation.APPROVE)
    assert excinfo.value.to_dict() == {
        "error": "Insufficient privileges",
        "code": "ACCESS_DENIED",
        "required": ["Admin", "Manager"],
        "current": "Driver",
    }


def test_require_returns_identity_when_allowed():
    identity = Identity(role="Admin", email="a@example.com")
    assert require(identity, Operation.REOPEN) is identity


def test_only_drivers_are_creator_scoped():
    assert is_creator_scoped(Identity(role="Driver", email="d@example.com"))
    assert not is_creator_scoped(Identity(role="Manager", email="m@example.com"))
