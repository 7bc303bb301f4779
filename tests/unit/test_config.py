"""
Unit tests for import configuration
"""

import pytest
from core.exceptions import ConfigurationError, UnknownCallbackError
from importer.config import ColumnOptions, ImportConfigBuilder
from sample_tables import LegacyPerson, Person


def builder():
    return ImportConfigBuilder().transform(from_=LegacyPerson, to=Person)


class TestMapAttribute:
    """Test the accepted map_attribute argument forms"""

    def test_destination_only(self):
        config = builder().map_attribute("ssn").build()
        assert config.transformations == {"ssn": None}

    def test_source_then_destination(self):
        config = builder().map_attribute("name", "fullname").build()
        assert config.transformations == {"fullname": "name"}

    def test_function_in_either_position(self):
        upper = lambda record: record.name.upper()

        first = builder().map_attribute("fullname", upper).build()
        last = builder().map_attribute(upper, "fullname").build()

        assert first.transformations == {"fullname": upper}
        assert last.transformations == {"fullname": upper}

    def test_mapping_order_is_kept(self):
        config = (
            builder()
            .map_attribute("ssn")
            .map_attribute("name", "fullname")
            .map_attribute("email")
            .build()
        )
        assert config.columns == ["ssn", "fullname", "email"]

    def test_column_options(self):
        config = builder().map_attribute("email", required=True, try_chain="strip").build()

        options = config.options_for("email")
        assert options.required is True
        assert options.try_chain == ("strip",)
        assert config.options_for("unmapped") == ColumnOptions()

    def test_ambiguous_arguments(self):
        with pytest.raises(ConfigurationError):
            builder().map_attribute(1, 2)

    def test_too_many_arguments(self):
        with pytest.raises(ConfigurationError):
            builder().map_attribute("a", "b", "c")


class TestBuild:
    """Test validation at build time"""

    def test_defaults(self):
        config = builder().map_attribute("ssn").build()

        assert config.batch_size == 10000
        assert config.pool_size == 4
        assert config.force_full_update is False
        assert config.create_new_records is True
        assert config.use_db is True
        assert config.validate_rows is True
        assert config.source_query is None

    def test_watermark_column_defaults_to_source_order_by(self):
        config = builder().map_attribute("updated_at").source_order_by("updated_at").build()
        assert config.watermark_column == "updated_at"

        config = (
            builder()
            .map_attribute("updated_at")
            .source_order_by("updated_at")
            .destination_order_by("imported_at")
            .build()
        )
        assert config.watermark_column == "imported_at"

    def test_models_are_required(self):
        with pytest.raises(ConfigurationError):
            ImportConfigBuilder().map_attribute("ssn").build()

        with pytest.raises(ConfigurationError):
            ImportConfigBuilder().transform(from_=LegacyPerson, to=None)

    def test_at_least_one_column(self):
        with pytest.raises(ConfigurationError):
            builder().build()

    def test_update_on_must_be_mapped(self):
        with pytest.raises(ConfigurationError):
            builder().map_attribute("ssn").update_on("external_id").build()

    @pytest.mark.parametrize("option", ["batch_size", "pool_size"])
    def test_sizes_must_be_positive(self, option):
        with pytest.raises(ConfigurationError):
            builder().map_attribute("ssn").options(**{option: 0}).build()

    def test_options_in_bulk(self):
        config = builder().map_attribute("ssn").options(batch_size=50, use_db=False).build()

        assert config.batch_size == 50
        assert config.use_db is False

    def test_unknown_option(self):
        with pytest.raises(ConfigurationError):
            builder().options(batchsize=50)

    @pytest.mark.parametrize("option", [
        "transformations",
        "transformation_options",
        "callbacks",
        "context_methods",
    ])
    def test_collections_cannot_be_set_as_options(self, option):
        with pytest.raises(ConfigurationError):
            builder().map_attribute("ssn").options(**{option: {}})

    def test_update_on_column_cannot_have_a_try_chain(self):
        with pytest.raises(ConfigurationError):
            (builder()
                .map_attribute("external_id", try_chain="strip")
                .update_on("external_id")
                .build())

    def test_config_is_immutable(self):
        config = builder().map_attribute("ssn").build()

        with pytest.raises(Exception):
            config.batch_size = 1


class TestCallbacks:
    """Test hook registration through the builder"""

    def test_named_setters(self):
        hook = lambda ctx, record: None
        config = builder().map_attribute("ssn").before_each(hook).reject(hook).build()

        assert config.callbacks == {"before_each": hook, "reject": hook}

    def test_unknown_callback(self):
        with pytest.raises(UnknownCallbackError):
            builder().callback("after_everything", lambda ctx: None)

    def test_context_method_must_be_callable(self):
        with pytest.raises(ConfigurationError):
            builder().context_method("age", "not callable")
