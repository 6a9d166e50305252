# Overview: Explicit query scopes; resolved once at the route boundary.

from __future__ import annotations

import enum
from dataclasses import dataclass

from ..errors import ValidationError


@dataclass(frozen=True)
class ViewScope:
    """
    Which rows a query may see.

    relation is "all", "owner" (the order's customer / the sale's seller) or
    "processor" (the admin who processed the order).
    """
    relation: str = "all"
    user_id: int | None = None

    @classmethod
    def everything(cls) -> "ViewScope":
        return cls("all", None)

    @classmethod
    def owned_by(cls, user_id: int) -> "ViewScope":
        return cls("owner", user_id)

    @classmethod
    def processed_by(cls, user_id: int) -> "ViewScope":
        return cls("processor", user_id)

    @property
    def is_everything(self) -> bool:
        return self.relation == "all"

    def apply(self, query, columns: dict):
        """Filter query using the model's column for this scope's relation."""
        if self.is_everything:
            return query
        column = columns.get(self.relation)
        if column is None:
            raise ValidationError(f"Scope '{self.relation}' is not supported for this listing")
        return query.filter(column == self.user_id)


class OrderView(enum.Enum):
    SYSTEM = "system"
    MY = "my"
    MY_PROCESSED = "my-processed"

    @classmethod
    def parse(cls, raw: str | None, default: "OrderView") -> "OrderView":
        if raw is None or not str(raw).strip():
            return default
        try:
            return cls(str(raw).strip().lower())
        except ValueError:
            raise ValidationError(
                f"Invalid view: {raw}",
                details={"allowed": [v.value for v in cls]},
            ) from None


class SaleView(enum.Enum):
    SYSTEM = "system"
    MY = "my"

    @classmethod
    def parse(cls, raw: str | None, default: "SaleView") -> "SaleView":
        if raw is None or not str(raw).strip():
            return default
        try:
            return cls(str(raw).strip().lower())
        except ValueError:
            raise ValidationError(
                f"Invalid view: {raw}",
                details={"allowed": [v.value for v in cls]},
            ) from None


def order_scope_for(view: OrderView, user) -> ViewScope:
    """Customers only ever see their own orders, whatever view they ask for."""
    if not user.is_admin:
        return ViewScope.owned_by(user.id)
    if view is OrderView.MY:
        return ViewScope.owned_by(user.id)
    if view is OrderView.MY_PROCESSED:
        return ViewScope.processed_by(user.id)
    return ViewScope.everything()


def sale_scope_for(view: SaleView, user) -> ViewScope:
    if view is SaleView.MY:
        return ViewScope.owned_by(user.id)
    return ViewScope.everything()
