"""Static page and operation permissions for company-context roles."""

from types import MappingProxyType
from typing import Mapping

from pydantic import BaseModel, ConfigDict


class RolePermissions(BaseModel):
    """Allow-lists of pages and operations plus a deny-list that always wins."""

    model_config = ConfigDict(frozen=True)

    pages: frozenset[str]
    operations: frozenset[str]
    restricted_pages: frozenset[str] = frozenset()


def _role(pages, operations, restricted_pages) -> RolePermissions:
    return RolePermissions(
        pages=frozenset(pages),
        operations=frozenset(operations),
        restricted_pages=frozenset(restricted_pages),
    )


PAGE_PERMISSIONS: Mapping[str, RolePermissions] = MappingProxyType(
    {
        "SECONDARY ADMIN": _role(
            ["dashboard", "parties", "items", "sales", "purchases", "reports", "settings"],
            ["view", "add", "edit", "delete", "share", "preview", "reopen"],
            ["add-user"],
        ),
        "SALESMAN": _role(
            [
                "dashboard",
                "parties",
                "items",
                "sales",
                "payment-in",
                "sale-order",
                "credit-note",
                "estimate",
                "expense",
            ],
            ["view", "add", "share", "preview"],
            ["add-user", "purchases", "payment-out", "purchase-order", "debit-note"],
        ),
        "CA": _role(
            ["dashboard", "reports", "profit-and-loss", "party-statement"],
            ["view"],
            ["add-user", "sales", "purchases", "parties", "items"],
        ),
        "PURCHASER": _role(
            [
                "dashboard",
                "purchases",
                "payment-out",
                "purchase-order",
                "debit-note",
                "purchase-estimate",
                "purchase-expense",
            ],
            ["view", "add", "share", "preview"],
            ["add-user", "sales", "payment-in", "sale-order", "credit-note"],
        ),
    }
)


def get_role_permissions(role: str | None) -> RolePermissions | None:
    if role is None:
        return None
    return PAGE_PERMISSIONS.get(role)


def check_page_access(role: str | None, page: str) -> bool:
    """Restricted pages are denied first; otherwise the page must be allow-listed."""
    permissions = get_role_permissions(role)
    if permissions is None:
        return False
    if page in permissions.restricted_pages:
        return False
    return page in permissions.pages


def check_operation_permission(role: str | None, operation: str) -> bool:
    permissions = get_role_permissions(role)
    return permissions is not None and operation in permissions.operations
