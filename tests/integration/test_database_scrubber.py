"""
Tests for scrubbing PII across a whole table
"""

import pytest
from unittest.mock import MagicMock
from sqlalchemy import select
from core.exceptions import ConfigurationError
from importer.scrubbers import DatabaseScrubber
from sample_tables import Person


class TestDatabaseScrubber:
    """Test in-place scrubbing of the destination table"""

    @pytest.mark.asyncio
    async def test_scrubs_and_updates_changed_rows_only(self, seed, destination_sessions, db_session):
        await seed(
            Person(fullname="Ann", ssn="123-45-6789", notes="see 987654321"),
            Person(fullname="Bob", ssn=None, notes="nothing to hide"),
            Person(fullname="Cy", ssn="###-##-####", notes=None),
            *(Person(fullname=f"P{n}", notes=f"ref {n:09d}") for n in range(4)),
        )
        scrubber = DatabaseScrubber(
            Person,
            columns=["ssn", "notes"],
            batch_size=2,
            pool_size=2,
            session_maker=destination_sessions
        )

        result = await scrubber.run()

        assert result == {"records_scanned": 7, "records_updated": 5}
        rows = (await db_session.execute(select(Person).order_by(Person.id))).scalars().all()
        assert [(row.ssn, row.notes) for row in rows[:3]] == [
            ("###-##-####", "see #########"),
            (None, "nothing to hide"),
            ("###-##-####", None),
        ]
        assert {row.notes for row in rows[3:]} == {"ref #########"}
        assert [row.fullname for row in rows] == ["Ann", "Bob", "Cy", "P0", "P1", "P2", "P3"]

    @pytest.mark.asyncio
    async def test_empty_table(self, destination_sessions):
        scrubber = DatabaseScrubber(Person, columns=["ssn"], session_maker=destination_sessions)

        assert await scrubber.run() == {"records_scanned": 0, "records_updated": 0}

    def test_columns_are_required(self):
        with pytest.raises(ConfigurationError):
            DatabaseScrubber(Person, columns=[], session_maker=MagicMock())

    def test_unknown_columns(self):
        with pytest.raises(ConfigurationError):
            DatabaseScrubber(Person, columns=["social"], session_maker=MagicMock())
