"""
Unit tests for column rule resolution
"""

import pytest
from types import SimpleNamespace
from core.exceptions import ConfigurationError
from importer.transformers import (
    CopySourceColumn,
    FieldResolver,
    Invoke,
    InvokeNamedContextMethod,
    NullRule,
    PassthroughSameNamedAttribute,
)


class Context:
    offset = 5

    def age(self, record):
        return 2024 - record.birth_year + self.offset


@pytest.fixture
def resolver():
    return FieldResolver(
        source_columns=["ssn", "name", "age"],
        context=Context(),
        context_methods={"age": Context.age},
        source_attributes=["id", "ssn", "name", "age"]
    )


class TestFieldResolver:
    """Test rule precedence"""

    def test_column_name_copies(self, resolver):
        rule = resolver.resolve("fullname", "name")

        assert rule == CopySourceColumn("name")
        assert rule(SimpleNamespace(name="Ann")) == "Ann"

    def test_callable_is_invoked(self, resolver):
        rule = resolver.resolve("fullname", lambda record: record.name.upper())

        assert isinstance(rule, Invoke)
        assert rule(SimpleNamespace(name="ann")) == "ANN"

    def test_context_method_beats_same_named_column(self, resolver):
        rule = resolver.resolve("age", None)

        assert isinstance(rule, InvokeNamedContextMethod)
        assert rule(SimpleNamespace(birth_year=2000, age=99)) == 29

    def test_same_named_column_passthrough(self, resolver):
        rule = resolver.resolve("ssn", None)

        assert rule == PassthroughSameNamedAttribute("ssn")
        assert rule(SimpleNamespace(ssn="123-45-6789")) == "123-45-6789"

    def test_nothing_resolves_to_null(self, resolver):
        rule = resolver.resolve("nickname", None)

        assert rule == NullRule()
        assert rule(SimpleNamespace()) is None

    def test_missing_source_column(self, resolver):
        with pytest.raises(ConfigurationError):
            resolver.resolve("fullname", "full_name")

    def test_unrecognized_instruction(self, resolver):
        with pytest.raises(ConfigurationError):
            resolver.resolve("fullname", 42)

    def test_copy_is_unchecked_without_source_attributes(self):
        resolver = FieldResolver(source_columns=[])

        assert resolver.resolve("total", "sum_total") == CopySourceColumn("sum_total")

    def test_resolve_all_keeps_order(self, resolver):
        rules = resolver.resolve_all({"ssn": None, "fullname": "name", "nickname": None})

        assert list(rules) == ["ssn", "fullname", "nickname"]
        assert rules["nickname"] == NullRule()
