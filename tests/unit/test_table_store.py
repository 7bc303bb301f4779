"""
Tests for table reads, bulk writes and row validation
"""

import pytest
from typing import Optional
from pydantic import BaseModel, field_validator
from sqlalchemy import select
from core.exceptions import ConfigurationError, DatabaseError
from importer.loaders import table_store as table_store_module
from importer.loaders import TableStore
from sample_tables import Person


class PersonSchema(BaseModel):
    fullname: str
    email: Optional[str] = None

    @field_validator("email")
    @classmethod
    def email_has_at(cls, v):
        if v is not None and "@" not in v:
            raise ValueError("is invalid")
        return v


class TestValidateRow:
    """Test row validation against the destination model"""

    def test_valid_row(self):
        store = TableStore(None, Person)
        assert store.validate_row({"fullname": "Ann", "ssn": "###-##-####"}) == {}

    def test_blank_required_column(self):
        store = TableStore(None, Person)

        assert store.validate_row({"fullname": None}) == {"fullname": ["can't be blank"]}
        assert store.validate_row({"ssn": "x"}) == {"fullname": ["can't be blank"]}

    def test_too_long(self):
        store = TableStore(None, Person)

        errors = store.validate_row({"fullname": "x" * 21})

        assert errors == {"fullname": ["is too long (maximum is 20 characters)"]}

    def test_schema_errors(self):
        store = TableStore(None, Person, schema=PersonSchema)

        errors = store.validate_row({"fullname": "Ann", "email": "nope"})

        assert list(errors) == ["email"]
        assert "is invalid" in errors["email"][0]

    def test_unknown_column(self):
        store = TableStore(None, Person)

        with pytest.raises(ConfigurationError):
            store.column("nickname")


class TestTableStore:
    """Test the database operations"""

    @pytest.mark.asyncio
    async def test_bulk_insert_holds_back_invalid_rows(self, db_session):
        store = TableStore(db_session, Person)

        result = await store.bulk_insert(
            ["fullname", "ssn"],
            [("Ann", "1"), (None, "2"), ("Bob", "3")]
        )

        assert result.inserted_count == 2
        assert len(result.failed_rows) == 1
        assert result.failed_rows[0].row == {"fullname": None, "ssn": "2"}
        assert result.failed_rows[0].errors == {"fullname": ["can't be blank"]}

        names = (await db_session.execute(select(Person.fullname).order_by(Person.id))).scalars().all()
        assert names == ["Ann", "Bob"]

    @pytest.mark.asyncio
    async def test_bulk_insert_without_validation_surfaces_database_error(self, db_session):
        store = TableStore(db_session, Person)

        with pytest.raises(DatabaseError) as exc_info:
            await store.bulk_insert(["fullname"], [(None,)], validate=False)

        assert exc_info.value.context["table_name"] == "people"
        assert exc_info.value.context["operation"] == "INSERT"

    @pytest.mark.asyncio
    async def test_empty_insert(self, db_session):
        store = TableStore(db_session, Person)

        result = await store.bulk_insert(["fullname"], [])

        assert result.inserted_count == 0
        assert result.failed_rows == []

    @pytest.mark.asyncio
    async def test_count_fetch_and_max(self, db_session, seed):
        await seed(*(Person(fullname=f"P{n}", updated_at=n) for n in range(5)))
        store = TableStore(db_session, Person)
        query = select(Person).order_by(Person.id)

        assert await store.count(query) == 5
        page = await store.fetch_page(query, 3, 10)
        assert [person.fullname for person in page] == ["P3", "P4"]
        assert await store.max_value("updated_at") == 4
        assert await store.max_value("updated_at", {"fullname": "P1"}) == 1

    @pytest.mark.asyncio
    async def test_max_of_empty_table(self, db_session):
        store = TableStore(db_session, Person)
        assert await store.max_value("updated_at") is None

    @pytest.mark.asyncio
    async def test_lookup_ids_in_slices(self, db_session, seed, monkeypatch):
        monkeypatch.setattr(table_store_module, "LOOKUP_SLICE_SIZE", 2)
        await seed(*(Person(fullname=f"P{n}", external_id=f"ext-{n}") for n in range(5)))
        store = TableStore(db_session, Person)

        existing = await store.lookup_ids("external_id", ["ext-0", "ext-3", "ext-4", "ext-9", None, "ext-0"])

        assert set(existing) == {"ext-0", "ext-3", "ext-4"}
        rows = (await db_session.execute(select(Person.external_id, Person.id))).all()
        assert existing == {external_id: row_id for external_id, row_id in rows if external_id in existing}

    @pytest.mark.asyncio
    async def test_bulk_update_by_id(self, db_session, seed):
        await seed(Person(id=1, fullname="Ann"), Person(id=2, fullname="Bob"))
        store = TableStore(db_session, Person)

        updated = await store.bulk_update_by_id({
            1: {"fullname": "Ann B", "email": "ann@example.com"},
            2: {"fullname": "Bob C", "email": None},
        })

        assert updated == 2
        db_session.expire_all()
        rows = (await db_session.execute(select(Person.id, Person.fullname, Person.email).order_by(Person.id))).all()
        assert [tuple(row) for row in rows] == [(1, "Ann B", "ann@example.com"), (2, "Bob C", None)]

    @pytest.mark.asyncio
    async def test_bulk_update_nothing(self, db_session):
        assert await TableStore(db_session, Person).bulk_update_by_id({}) == 0
