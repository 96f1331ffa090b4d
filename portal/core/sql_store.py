"""SQLAlchemy-backed account store.

Uniqueness among live accounts is enforced with partial unique indexes
(``WHERE status != 'deleted'``), supported by both PostgreSQL and SQLite.
"""
from __future__ import annotations

import datetime
import logging
from typing import Any, Optional

import sqlalchemy as sa
from sqlalchemy.exc import IntegrityError
from sqlalchemy.pool import StaticPool

from .errors import UniqueConstraintViolation
from .models import AccountStatus, IntegrationAccount, utcnow
from .store import AccountStore, IDENTITY_CONSTRAINT, USER_CONSTRAINT, _check_fields

logger = logging.getLogger(__name__)

_LIVE = sa.text("status != 'deleted'")

metadata_obj = sa.MetaData()

integration_account = sa.Table(
    "integration_account",
    metadata_obj,
    sa.Column("id", sa.String(36), primary_key=True),
    sa.Column("user_id", sa.String(255), nullable=False, index=True),
    sa.Column("integration_id", sa.String(64), nullable=False),
    sa.Column("external_identity", sa.String(320), nullable=False),
    sa.Column("status", sa.String(16), nullable=False, index=True),
    sa.Column("account_metadata", sa.JSON, nullable=False),
    sa.Column("credentials", sa.JSON, nullable=False),
    sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    sa.Index(
        USER_CONSTRAINT, "integration_id", "user_id",
        unique=True, sqlite_where=_LIVE, postgresql_where=_LIVE,
    ),
    sa.Index(
        IDENTITY_CONSTRAINT, "integration_id", "external_identity",
        unique=True, sqlite_where=_LIVE, postgresql_where=_LIVE,
    ),
)

_COLUMN_FOR_FIELD = {
    "status": "status",
    "metadata": "account_metadata",
    "credentials": "credentials",
    "external_identity": "external_identity",
}


def _aware(value: datetime.datetime) -> datetime.datetime:
    # SQLite drops tzinfo on the way back
    if value.tzinfo is None:
        return value.replace(tzinfo=datetime.timezone.utc)
    return value


def _row_to_account(row: Any) -> IntegrationAccount:
    return IntegrationAccount(
        id=row.id,
        user_id=row.user_id,
        integration_id=row.integration_id,
        external_identity=row.external_identity,
        status=AccountStatus(row.status),
        created_at=_aware(row.created_at),
        updated_at=_aware(row.updated_at),
        metadata=dict(row.account_metadata or {}),
        credentials=dict(row.credentials or {}),
    )


def _constraint_from(exc: IntegrityError) -> str:
    message = str(exc.orig)
    if USER_CONSTRAINT in message or "user_id" in message:
        return USER_CONSTRAINT
    if IDENTITY_CONSTRAINT in message or "external_identity" in message:
        return IDENTITY_CONSTRAINT
    return "integration_account"


class SqlAccountStore(AccountStore):
    """Account store on any SQLAlchemy engine."""

    def __init__(self, engine: sa.engine.Engine, create_schema: bool = True):
        self.engine = engine
        if create_schema:
            metadata_obj.create_all(engine)

    @classmethod
    def from_url(cls, url: str) -> "SqlAccountStore":
        """Build a store from a database URL.

        In-memory SQLite shares a single connection so every thread sees the
        same database.
        """
        in_memory = url.startswith("sqlite") and (":memory:" in url or url.rstrip("/") == "sqlite:")
        if in_memory:
            engine = sa.create_engine(
                url,
                connect_args={"check_same_thread": False},
                poolclass=StaticPool,
            )
        else:
            engine = sa.create_engine(url, pool_pre_ping=True)
        logger.info(f"Account store using {engine.url.render_as_string(hide_password=True)}")
        return cls(engine)

    def insert(self, account: IntegrationAccount) -> IntegrationAccount:
        values = {
            "id": account.id,
            "user_id": account.user_id,
            "integration_id": account.integration_id,
            "external_identity": account.external_identity,
            "status": account.status.value,
            "account_metadata": dict(account.metadata),
            "credentials": dict(account.credentials),
            "created_at": account.created_at,
            "updated_at": account.updated_at,
        }
        try:
            with self.engine.begin() as conn:
                conn.execute(integration_account.insert().values(**values))
        except IntegrityError as exc:
            raise UniqueConstraintViolation(_constraint_from(exc)) from exc
        return self.get(account.id)

    def get(self, account_id: str) -> Optional[IntegrationAccount]:
        query = sa.select(integration_account).where(integration_account.c.id == account_id)
        with self.engine.connect() as conn:
            row = conn.execute(query).first()
        return _row_to_account(row) if row else None

    def find_active(self, user_id: str, integration_id: str) -> Optional[IntegrationAccount]:
        query = sa.select(integration_account).where(
            integration_account.c.user_id == user_id,
            integration_account.c.integration_id == integration_id,
            integration_account.c.status != AccountStatus.DELETED.value,
        )
        with self.engine.connect() as conn:
            row = conn.execute(query).first()
        return _row_to_account(row) if row else None

    def find_by_identity(self, integration_id: str, external_identity: str) -> Optional[IntegrationAccount]:
        query = sa.select(integration_account).where(
            integration_account.c.integration_id == integration_id,
            integration_account.c.external_identity == external_identity,
            integration_account.c.status != AccountStatus.DELETED.value,
        )
        with self.engine.connect() as conn:
            row = conn.execute(query).first()
        return _row_to_account(row) if row else None

    def update(self, account_id: str, **fields: Any) -> Optional[IntegrationAccount]:
        _check_fields(fields)
        values: dict[str, Any] = {"updated_at": utcnow()}
        for name, value in fields.items():
            if name == "status":
                value = AccountStatus(value).value
            elif name in ("metadata", "credentials"):
                value = dict(value)
            values[_COLUMN_FOR_FIELD[name]] = value
        statement = (
            integration_account.update()
            .where(integration_account.c.id == account_id)
            .values(**values)
        )
        try:
            with self.engine.begin() as conn:
                result = conn.execute(statement)
        except IntegrityError as exc:
            raise UniqueConstraintViolation(_constraint_from(exc)) from exc
        if result.rowcount == 0:
            return None
        return self.get(account_id)

    def delete(self, account_id: str) -> bool:
        statement = integration_account.delete().where(integration_account.c.id == account_id)
        with self.engine.begin() as conn:
            result = conn.execute(statement)
        return result.rowcount > 0

    def list(
        self,
        integration_id: str,
        status: Optional[AccountStatus] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> tuple[list[IntegrationAccount], int]:
        conditions = [integration_account.c.integration_id == integration_id]
        if status is not None:
            conditions.append(integration_account.c.status == AccountStatus(status).value)
        page_query = (
            sa.select(integration_account)
            .where(*conditions)
            .order_by(integration_account.c.created_at.desc())
            .limit(limit)
            .offset(offset)
        )
        count_query = sa.select(sa.func.count()).select_from(integration_account).where(*conditions)
        with self.engine.connect() as conn:
            rows = conn.execute(page_query).all()
            total = conn.execute(count_query).scalar_one()
        return [_row_to_account(row) for row in rows], int(total)
