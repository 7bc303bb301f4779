"""
Source and destination tables used by the test suite
"""

from sqlalchemy import Column, Integer, String, Text
from sqlalchemy.orm import declarative_base

SampleBase = declarative_base()


class LegacyPerson(SampleBase):
    """Source table"""
    __tablename__ = "legacy_people"

    id = Column(Integer, primary_key=True, autoincrement=True)
    ssn = Column(String(11), nullable=True)
    name = Column(String(100), nullable=True)
    email = Column(String(255), nullable=True)
    external_id = Column(String(50), nullable=True)
    updated_at = Column(Integer, nullable=True)
    birth_year = Column(Integer, nullable=True)
    notes = Column(Text, nullable=True)


class Person(SampleBase):
    """Destination table"""
    __tablename__ = "people"

    id = Column(Integer, primary_key=True, autoincrement=True)
    fullname = Column(String(20), nullable=False)
    ssn = Column(String(11), nullable=True)
    email = Column(String(255), nullable=True)
    external_id = Column(String(50), nullable=True, index=True)
    updated_at = Column(Integer, nullable=True)
    age = Column(Integer, nullable=True)
    notes = Column(Text, nullable=True)
