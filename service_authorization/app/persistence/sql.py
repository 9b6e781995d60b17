"""
SQL persistence layer for the Authorization Service.

One table row per rule: a ``ptype`` discriminator (``p`` or ``g``) and six
positional value columns ``v0``..``v5``. Unused slots hold ``''``.
"""

from typing import Iterable, List, Optional

from sqlalchemy import (
    Column, Integer, MetaData, String, Table, and_, create_engine, func, select, text
)
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.pool import StaticPool

from shared.logging import get_logger
from shared.errors import StoreConnectError, PersistenceWriteError
from ..rules.models import RuleRow, ROW_WIDTH


def _build_table(metadata: MetaData, table_name: str) -> Table:
    columns = [
        Column("id", Integer, primary_key=True, autoincrement=True),
        Column("ptype", String(100), nullable=False, index=True),
    ]
    for index in range(ROW_WIDTH):
        columns.append(Column(f"v{index}", String(100), nullable=False, server_default=""))
    return Table(table_name, metadata, *columns)


def create_sql_engine(database_url: str) -> Engine:
    """Create an engine; in-memory SQLite shares one connection across threads."""
    if database_url in ("sqlite://", "sqlite:///:memory:"):
        return create_engine(
            database_url,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
    return create_engine(database_url, pool_pre_ping=True)


class SQLRuleStore:
    """SQL persistence layer for rules."""

    def __init__(self, engine: Engine, table_name: str = "authorization_rules"):
        self.engine = engine
        self.table_name = table_name
        self.logger = get_logger("authorization.persistence.sql")
        self.metadata = MetaData()
        self.table = _build_table(self.metadata, table_name)

    @classmethod
    def from_url(cls, database_url: str, table_name: str = "authorization_rules") -> "SQLRuleStore":
        try:
            engine = create_sql_engine(database_url)
        except (SQLAlchemyError, ImportError) as e:
            raise StoreConnectError("failed to connect to rule store", {"error": str(e)}) from e
        return cls(engine, table_name)

    def start(self):
        """Create the rules table if it does not exist."""
        try:
            self.metadata.create_all(self.engine)
        except SQLAlchemyError as e:
            self.logger.error("Failed to start rule store", table=self.table_name, error=str(e))
            raise StoreConnectError("failed to connect to rule store", {"table": self.table_name, "error": str(e)}) from e

        self.logger.info("Rule store started", table=self.table_name, dialect=self.engine.dialect.name)

    def close(self):
        self.engine.dispose()
        self.logger.info("Rule store stopped", table=self.table_name)

    def _row_filter(self, row: RuleRow):
        conditions = [self.table.c.ptype == row.ptype]
        for index, value in enumerate(row.values):
            conditions.append(self.table.c[f"v{index}"] == value)
        return and_(*conditions)

    def _to_row(self, record) -> RuleRow:
        return RuleRow(
            ptype=record.ptype,
            values=tuple(getattr(record, f"v{index}") or "" for index in range(ROW_WIDTH))
        )

    def load_all(self) -> List[RuleRow]:
        """Load every stored rule in insertion order."""
        try:
            with self.engine.connect() as conn:
                records = conn.execute(select(self.table).order_by(self.table.c.id)).fetchall()
        except SQLAlchemyError as e:
            self.logger.error("Error loading rules", table=self.table_name, error=str(e))
            raise StoreConnectError("failed to load rules from store", {"table": self.table_name, "error": str(e)}) from e

        return [self._to_row(record) for record in records]

    def exists(self, row: RuleRow, conn=None) -> bool:
        """Whether an identical row is stored."""
        query = select(self.table.c.id).where(self._row_filter(row)).limit(1)
        if conn is not None:
            return conn.execute(query).first() is not None

        with self.engine.connect() as own_conn:
            return own_conn.execute(query).first() is not None

    def insert_batch(self, rows: Iterable[RuleRow]) -> List[RuleRow]:
        """Insert the rows not yet stored, all in one transaction.

        Returns the rows actually inserted. On failure nothing is written.
        """
        rows = list(rows)
        inserted: List[RuleRow] = []
        if not rows:
            return inserted

        try:
            with self.engine.begin() as conn:
                for row in rows:
                    if self.exists(row, conn):
                        continue
                    conn.execute(self.table.insert().values(**row.columns()))
                    inserted.append(row)
        except SQLAlchemyError as e:
            self.logger.error("Error saving rules", table=self.table_name, rows=len(rows), error=str(e))
            raise PersistenceWriteError(
                "failed to add rules to store",
                {"table": self.table_name, "rows": [[row.ptype, *row.values] for row in rows], "error": str(e)}
            ) from e

        self.logger.info("Rules saved", table=self.table_name, inserted=len(inserted), skipped=len(rows) - len(inserted))
        return inserted

    def count(self, ptype: Optional[str] = None) -> int:
        """Number of stored rows, optionally of one type."""
        query = select(func.count()).select_from(self.table)
        if ptype is not None:
            query = query.where(self.table.c.ptype == ptype)
        with self.engine.connect() as conn:
            return conn.execute(query).scalar_one()

    def health_check(self) -> bool:
        """Check database health."""
        try:
            with self.engine.connect() as conn:
                conn.execute(text("SELECT 1"))
                return True
        except SQLAlchemyError:
            return False
