import pytest

from utils.permissions import (
    PAGE_PERMISSIONS,
    check_operation_permission,
    check_page_access,
    get_role_permissions,
)


@pytest.mark.parametrize(
    "role,page,allowed",
    [
        ("SECONDARY ADMIN", "settings", True),
        ("SECONDARY ADMIN", "add-user", False),
        ("SALESMAN", "sales", True),
        ("SALESMAN", "purchases", False),
        ("CA", "profit-and-loss", True),
        ("CA", "items", False),
        ("PURCHASER", "purchase-order", True),
        ("PURCHASER", "reports", False),
    ],
)
def test_check_page_access(role, page, allowed):
    assert check_page_access(role, page) is allowed


def test_unknown_role_is_denied():
    assert check_page_access("OWNER", "dashboard") is False
    assert check_page_access(None, "dashboard") is False
    assert check_operation_permission("OWNER", "view") is False
    assert get_role_permissions(None) is None


def test_operations_are_role_specific():
    assert check_operation_permission("SECONDARY ADMIN", "delete") is True
    assert check_operation_permission("SALESMAN", "delete") is False
    assert check_operation_permission("CA", "view") is True
    assert check_operation_permission("CA", "add") is False


def test_permission_table_is_read_only():
    with pytest.raises(TypeError):
        PAGE_PERMISSIONS["HACKER"] = PAGE_PERMISSIONS["CA"]
    assert isinstance(PAGE_PERMISSIONS["CA"].pages, frozenset)
