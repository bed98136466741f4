from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable

from sqlalchemy import Column, DateTime, String, Table, Text
from sqlalchemy.orm import Session
from sqlalchemy.sql import select
import zope.interface

from ..interfaces import IAdminTokenStore


def admin_token_table(metadata, name="shop_admin_tokens"):
    return Table(
        name,
        metadata,
        Column("shop", String(255), primary_key=True),
        Column("access_token", Text, nullable=False),
        Column("scope", Text, nullable=False, default=""),
        Column("updated_at", DateTime(timezone=True), nullable=False),
    )


@zope.interface.implementer(IAdminTokenStore)
@dataclass
class SqlalchemyAdminTokenStore:
    """Store the admin access token for each shop with SQLAlchemy."""

    db: Session
    table: Table

    mark_changed: Callable = None

    def store_token(self, shop, access_token, scope=None):
        values = dict(
            access_token=access_token,
            scope=scope or "",
            updated_at=datetime.now(timezone.utc),
        )
        # Select then write instead of a dialect specific upsert.
        exists = self.db.execute(
            select(self.table.c.shop).where(self.table.c.shop == shop)
        ).first()
        if exists:
            result = self.db.execute(
                self.table.update().where(self.table.c.shop == shop).values(**values)
            )
        else:
            result = self.db.execute(self.table.insert().values(shop=shop, **values))
        if self.mark_changed:
            self.mark_changed(self.db)
        return result

    def load_token(self, shop):
        row = (
            self.db.execute(
                select(self.table.c.access_token).where(self.table.c.shop == shop)
            )
            .mappings()
            .first()
        )
        return row["access_token"] if row else None

    def remove_token(self, shop):
        """Intended to be used when the shop uninstalls the application."""
        result = self.db.execute(self.table.delete().where(self.table.c.shop == shop))
        if self.mark_changed:
            self.mark_changed(self.db)
        return result
