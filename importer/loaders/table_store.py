"""
Read and write one table through one session: counts, pages, bulk writes
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence

from pydantic import ValidationError
from sqlalchemy import String, func, insert, select, update
from sqlalchemy import inspect as sa_inspect
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from core.exceptions import ConfigurationError, DatabaseError
import logging

logger = logging.getLogger(__name__)

# Values per IN (...) clause when looking up existing rows
LOOKUP_SLICE_SIZE = 999


@dataclass
class FailedRow:
    """A row held back from insert, with field -> messages"""
    row: Dict[str, Any]
    errors: Dict[str, List[str]] = field(default_factory=dict)


@dataclass
class InsertResult:
    inserted_count: int = 0
    failed_rows: List[FailedRow] = field(default_factory=list)


class TableStore:
    """
    Table operations the importer needs, bound to one session and one model.

    A store is cheap: the engine makes one per job per side, so a store never
    outlives the session it was given.

    Ensures:
    - Bulk writes are committed as one statement per batch
    - Invalid rows are reported, not written
    - Database failures surface as DatabaseError with table context
    """

    def __init__(self, db_session: AsyncSession, model: Any, schema: Optional[Any] = None):
        self.db = db_session
        self.model = model
        self.schema = schema
        self.mapper = sa_inspect(model)
        self.table_name = self.mapper.local_table.name

        primary_key = self.mapper.primary_key
        if len(primary_key) != 1:
            raise ConfigurationError(
                "bulk updates need a single-column primary key",
                context={"table_name": self.table_name}
            )
        self.primary_key = self.mapper.get_property_by_column(primary_key[0]).key

    def column(self, name: str) -> Any:
        try:
            return getattr(self.model, name)
        except AttributeError:
            raise ConfigurationError(
                f"{self.table_name} has no column {name!r}",
                context={"table_name": self.table_name, "column": name}
            )

    @property
    def column_names(self) -> List[str]:
        return [prop.key for prop in self.mapper.column_attrs]

    # ------------------------------------------------------------------
    # reads
    # ------------------------------------------------------------------

    async def count(self, query: Any) -> int:
        stmt = select(func.count()).select_from(query.order_by(None).subquery())
        result = await self._execute("COUNT", stmt)
        return result.scalar_one()

    async def fetch_page(self, query: Any, offset: int, limit: int) -> List[Any]:
        """One page of ``query``; ORM instances when it selects an entity"""
        result = await self._execute("SELECT", query.offset(offset).limit(limit))
        if _selects_single_entity(query):
            return list(result.scalars().all())
        return list(result.all())

    async def max_value(self, column: str, conditions: Optional[Mapping[str, Any]] = None) -> Any:
        stmt = select(func.max(self.column(column)))
        for name, value in (conditions or {}).items():
            stmt = stmt.where(self.column(name) == value)
        result = await self._execute("SELECT", stmt)
        return result.scalar()

    async def lookup_ids(self, column: str, values: Iterable[Any]) -> Dict[Any, Any]:
        """Map each existing ``column`` value to its row's primary key"""
        unique_values = [value for value in dict.fromkeys(values) if value is not None]
        key_column = self.column(column)
        id_column = self.column(self.primary_key)

        existing: Dict[Any, Any] = {}
        for start in range(0, len(unique_values), LOOKUP_SLICE_SIZE):
            chunk = unique_values[start:start + LOOKUP_SLICE_SIZE]
            result = await self._execute(
                "SELECT",
                select(key_column, id_column).where(key_column.in_(chunk))
            )
            existing.update({value: row_id for value, row_id in result.all()})
        return existing

    # ------------------------------------------------------------------
    # writes
    # ------------------------------------------------------------------

    async def bulk_insert(
        self,
        columns: Sequence[str],
        rows: Sequence[Sequence[Any]],
        validate: bool = True
    ) -> InsertResult:
        """
        Insert value tuples (ordered like ``columns``) in one statement.

        Returns:
            InsertResult with the rows written and the rows that failed
            validation (those are never sent to the database)
        """
        records = [dict(zip(columns, row)) for row in rows]
        result = InsertResult()

        if validate:
            valid = []
            for record in records:
                errors = self.validate_row(record)
                if errors:
                    result.failed_rows.append(FailedRow(row=record, errors=errors))
                else:
                    valid.append(record)
            records = valid

        if records:
            await self._execute("INSERT", insert(self.model), records)
            await self._commit("INSERT", len(records))

        result.inserted_count = len(records)
        return result

    async def bulk_update_by_id(self, attrs_by_id: Mapping[Any, Mapping[str, Any]]) -> int:
        if not attrs_by_id:
            return 0

        params = [
            {**attrs, self.primary_key: row_id}
            for row_id, attrs in attrs_by_id.items()
        ]
        await self._execute("UPDATE", update(self.model), params)
        await self._commit("UPDATE", len(params))
        return len(params)

    def validate_row(self, record: Mapping[str, Any]) -> Dict[str, List[str]]:
        """Field -> messages for everything wrong with ``record``"""
        errors: Dict[str, List[str]] = {}

        for prop in self.mapper.column_attrs:
            column = prop.columns[0]
            value = record.get(prop.key)

            if value is None:
                # an explicit None is written as NULL; defaults only fill absent keys
                has_default = column.default is not None or column.server_default is not None
                if (
                    not column.nullable
                    and not column.primary_key
                    and (prop.key in record or not has_default)
                ):
                    errors.setdefault(prop.key, []).append("can't be blank")
                continue

            length = getattr(column.type, "length", None)
            if isinstance(column.type, String) and length and isinstance(value, str) and len(value) > length:
                errors.setdefault(prop.key, []).append(
                    f"is too long (maximum is {length} characters)"
                )

        if self.schema is not None:
            try:
                self.schema.model_validate(dict(record))
            except ValidationError as e:
                for error in e.errors():
                    field_name = str(error["loc"][0]) if error["loc"] else "base"
                    errors.setdefault(field_name, []).append(error["msg"])

        return errors

    # ------------------------------------------------------------------

    async def _execute(self, operation: str, stmt: Any, params: Optional[List[Dict[str, Any]]] = None):
        try:
            if params is None:
                return await self.db.execute(stmt)
            return await self.db.execute(stmt, params)
        except SQLAlchemyError as e:
            await self.db.rollback()
            raise DatabaseError(
                f"{operation} on {self.table_name} failed",
                context={
                    "operation": operation,
                    "table_name": self.table_name,
                    "rows": len(params) if params is not None else None
                },
                original_exception=e
            )

    async def _commit(self, operation: str, rows: int) -> None:
        try:
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            raise DatabaseError(
                f"Commit after {operation} on {self.table_name} failed",
                context={"operation": operation, "table_name": self.table_name, "rows": rows},
                original_exception=e
            )


def _selects_single_entity(query: Any) -> bool:
    descriptions = query.column_descriptions
    if len(descriptions) != 1:
        return False
    entity = descriptions[0].get("entity")
    return entity is not None and descriptions[0].get("expr") is entity
