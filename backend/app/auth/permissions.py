from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path
from types import MappingProxyType
from typing import Any, FrozenSet, Iterable, Mapping, Optional, Sequence

from app.core.roles import Role


@dataclass(frozen=True)
class Page:
    # business pages
    DASHBOARD: str = "dashboard"
    POS: str = "pos"
    PRODUCTS: str = "products"
    CATEGORIES: str = "categories"
    SUPPLIERS: str = "suppliers"
    PRODUCT_TRANSFER: str = "product-transfer"
    LOW_STOCK_ALERTS: str = "low-stock-alerts"
    ORDERS: str = "orders"
    TAX_MANAGEMENT: str = "tax-management"
    PRICING_PLANS: str = "pricing-plans"
    EMPLOYEES: str = "employees"
    CUSTOMERS: str = "customers"
    STORES: str = "stores"
    DEBT_MANAGEMENT: str = "debt-management"
    SETTINGS: str = "settings"

    # special pages (never in the matrix)
    LANDING: str = "landing"
    VERIFY_ACCOUNT: str = "verify-account"
    CUSTOMER_STOREFRONT: str = "customer-storefront"


PAGE = Page()

# Order used for landing/redirect resolution; also the sidebar order
PAGE_PRIORITY: tuple[str, ...] = (
    PAGE.DASHBOARD,
    PAGE.POS,
    PAGE.PRODUCTS,
    PAGE.CATEGORIES,
    PAGE.SUPPLIERS,
    PAGE.PRODUCT_TRANSFER,
    PAGE.LOW_STOCK_ALERTS,
    PAGE.ORDERS,
    PAGE.TAX_MANAGEMENT,
    PAGE.PRICING_PLANS,
    PAGE.EMPLOYEES,
    PAGE.CUSTOMERS,
    PAGE.STORES,
    PAGE.DEBT_MANAGEMENT,
    PAGE.SETTINGS,
    PAGE.VERIFY_ACCOUNT,
    PAGE.CUSTOMER_STOREFRONT,
)

# Never offered as automatic redirect targets, even if nominally accessible
EXCLUDED_REDIRECT_PAGES: FrozenSet[str] = frozenset(
    {PAGE.VERIFY_ACCOUNT, PAGE.CUSTOMER_STOREFRONT, PAGE.LANDING}
)

PermissionMatrix = Mapping[Role, FrozenSet[str]]

DEFAULT_PERMISSION_MATRIX: Mapping[str, Iterable[str]] = {
    Role.OWNER.value: (
        PAGE.DASHBOARD,
        PAGE.POS,
        PAGE.PRODUCTS,
        PAGE.CATEGORIES,
        PAGE.SUPPLIERS,
        PAGE.PRODUCT_TRANSFER,
        PAGE.LOW_STOCK_ALERTS,
        PAGE.ORDERS,
        PAGE.TAX_MANAGEMENT,
        PAGE.PRICING_PLANS,
        PAGE.EMPLOYEES,
        PAGE.CUSTOMERS,
        PAGE.STORES,
        PAGE.DEBT_MANAGEMENT,
        PAGE.SETTINGS,
    ),
    Role.MANAGER.value: (
        PAGE.DASHBOARD,
        PAGE.PRODUCTS,
        PAGE.CATEGORIES,
        PAGE.SUPPLIERS,
        PAGE.PRODUCT_TRANSFER,
        PAGE.LOW_STOCK_ALERTS,
        PAGE.ORDERS,
        PAGE.TAX_MANAGEMENT,
        PAGE.EMPLOYEES,
        PAGE.CUSTOMERS,
        PAGE.DEBT_MANAGEMENT,
        PAGE.SETTINGS,
    ),
    Role.CASHIER.value: (
        PAGE.DASHBOARD,
        PAGE.POS,
        PAGE.LOW_STOCK_ALERTS,
        PAGE.DEBT_MANAGEMENT,
    ),
}


def _normalize_resource(resource: Any) -> Optional[str]:
    if not isinstance(resource, str):
        return None
    r = resource.strip().lower()
    return r or None


def _coerce_role(role: Any) -> Optional[Role]:
    if isinstance(role, Role):
        return role
    if not isinstance(role, str):
        return None
    try:
        return Role(role.strip().upper())
    except ValueError:
        return None


def build_permission_matrix(mapping: Mapping[Any, Iterable[str]]) -> PermissionMatrix:
    """
    Validate and freeze a role -> resources table.

    Unknown roles are a configuration error. Roles missing from `mapping`
    get an empty set (deny everything).
    """
    frozen: dict[Role, FrozenSet[str]] = {role: frozenset() for role in Role}
    for raw_role, resources in mapping.items():
        role = _coerce_role(raw_role)
        if role is None:
            raise ValueError(f"Unknown role in permission matrix: {raw_role!r}")
        if isinstance(resources, str):
            raise ValueError(f"Resources for {role.value} must be a list, not a string")
        cleaned = set()
        for res in resources:
            r = _normalize_resource(res)
            if r is None:
                raise ValueError(f"Invalid resource for {role.value}: {res!r}")
            cleaned.add(r)
        frozen[role] = frozenset(cleaned)
    return MappingProxyType(frozen)


def load_permission_matrix(path: Optional[str] = None) -> PermissionMatrix:
    """
    Built-in matrix, or a JSON object {"ROLE": ["page", ...]} from `path`.
    Called once at startup.
    """
    if not path:
        return build_permission_matrix(DEFAULT_PERMISSION_MATRIX)
    data = json.loads(Path(path).read_text(encoding="utf-8"))
    if not isinstance(data, dict):
        raise ValueError("Permission matrix file must contain a JSON object")
    return build_permission_matrix(data)


class PermissionEngine:
    """
    Pure role -> resource authorization. Deny by default.
    """

    def __init__(self, matrix: PermissionMatrix):
        self._matrix = matrix

    @property
    def matrix(self) -> PermissionMatrix:
        return self._matrix

    def can_access(self, role: Any, resource: Any) -> bool:
        r = _coerce_role(role)
        res = _normalize_resource(resource)
        if r is None or res is None:
            return False
        return res in self._matrix.get(r, frozenset())

    def first_accessible_resource(self, role: Any, ordered_candidates: Sequence[str]) -> Optional[str]:
        for candidate in ordered_candidates:
            if self.can_access(role, candidate):
                return candidate
        return None

    def accessible_resources(self, role: Any, ordered_candidates: Sequence[str] = PAGE_PRIORITY) -> list[str]:
        return [c for c in ordered_candidates if self.can_access(role, c)]


def redirect_candidates(priority: Sequence[str] = PAGE_PRIORITY) -> tuple[str, ...]:
    return tuple(p for p in priority if p not in EXCLUDED_REDIRECT_PAGES)
