"""Tests for column mapping validation."""

import pytest

from glidesync.core.models import ColumnMapping, ColumnSchema
from glidesync.core.services import (
    MappingValidator,
    infer_data_type,
    normalize_native_type,
)


@pytest.fixture
def validator() -> MappingValidator:
    return MappingValidator()


class TestNativeTypes:
    """Test cases for native type normalization."""

    @pytest.mark.parametrize(
        ("native_type", "expected"),
        [
            ("VARCHAR(255)", "varchar"),
            ("character varying", "varchar"),
            ("NUMERIC(10, 2)", "numeric"),
            ("int4", "integer"),
            ("double precision", "double"),
            ("timestamp with time zone", "timestamptz"),
            ("BOOLEAN", "boolean"),
        ],
    )
    def test_normalize(self, native_type, expected):
        assert normalize_native_type(native_type) == expected

    def test_infer_data_type(self):
        assert infer_data_type("TEXT") == "string"
        assert infer_data_type("bigint") == "number"
        assert infer_data_type("jsonb") == "json"
        assert infer_data_type("GEOMETRY") is None


class TestMappingValidator:
    """Test cases for MappingValidator."""

    def test_valid_mapping(self, validator, source_schema, sink_schema, order_columns):
        result = validator.validate(order_columns, "to_sink", source_schema, sink_schema)

        assert result.is_valid is True
        assert result.message == MappingValidator.SUCCESS_MESSAGE

    def test_requires_a_column(self, validator, source_schema, sink_schema):
        result = validator.validate([], "to_sink", source_schema, sink_schema)

        assert result.is_valid is False
        assert "At least one column mapping" in result.message

    def test_duplicate_sink_column(self, validator, source_schema, sink_schema):
        columns = [
            ColumnMapping(source_column="Name", sink_column="name", data_type="string"),
            ColumnMapping(source_column="Summary", sink_column="name", data_type="string"),
        ]

        result = validator.validate(columns, "to_sink", source_schema, sink_schema)

        assert result.is_valid is False
        assert result.message == "Sink column 'name' is mapped more than once"

    def test_duplicate_checked_before_existence(self, validator, source_schema, sink_schema):
        """The first failing check wins, in a fixed order."""
        columns = [
            ColumnMapping(source_column="Missing", sink_column="nowhere", data_type="string"),
            ColumnMapping(source_column="Other", sink_column="nowhere", data_type="string"),
        ]

        result = validator.validate(columns, "to_sink", source_schema, sink_schema)

        assert "mapped more than once" in result.message

    @pytest.mark.parametrize("name", ["a,b", "a;b", "a|b", "a\tb", "   "])
    def test_malformed_source_column(self, validator, source_schema, sink_schema, name):
        columns = [ColumnMapping(source_column=name, sink_column="name", data_type="string")]

        result = validator.validate(columns, "to_sink", source_schema, sink_schema)

        assert result.is_valid is False

    def test_unknown_source_column(self, validator, source_schema, sink_schema):
        columns = [ColumnMapping(source_column="Color", sink_column="name", data_type="string")]

        result = validator.validate(columns, "to_sink", source_schema, sink_schema)

        assert result.message == "Source column 'Color' does not exist in the source table"

    def test_unknown_sink_column(self, validator, source_schema, sink_schema):
        columns = [ColumnMapping(source_column="Name", sink_column="title", data_type="string")]

        result = validator.validate(columns, "to_sink", source_schema, sink_schema)

        assert result.message == "Sink column 'title' does not exist in the sink table"

    def test_incompatible_type(self, validator, source_schema, sink_schema):
        columns = [
            ColumnMapping(source_column="Total Amount", sink_column="paid", data_type="number")
        ]

        result = validator.validate(columns, "to_sink", source_schema, sink_schema)

        assert result.is_valid is False
        assert "'paid'" in result.message
        assert "not compatible with number" in result.message

    def test_bidirectional_rejects_read_only_source(self, validator, source_schema, sink_schema):
        columns = [ColumnMapping(source_column="Summary", sink_column="name", data_type="string")]

        one_way = validator.validate(columns, "to_sink", source_schema, sink_schema)
        both_ways = validator.validate(columns, "bidirectional", source_schema, sink_schema)

        assert one_way.is_valid is True
        assert both_ways.is_valid is False
        assert "'Summary' is read-only" in both_ways.message

    def test_bidirectional_rejects_read_only_sink(self, validator, source_schema):
        sink_schema = [ColumnSchema(name="name", native_type="TEXT", writable=False)]
        columns = [ColumnMapping(source_column="Name", sink_column="name", data_type="string")]

        result = validator.validate(columns, "bidirectional", source_schema, sink_schema)

        assert result.is_valid is False
        assert "Sink column 'name' is read-only" in result.message
