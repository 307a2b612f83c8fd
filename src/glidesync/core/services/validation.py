"""Validation of column mappings against schema snapshots."""

import re

from glidesync.core.models import ColumnMapping, ColumnSchema, ValidationResult

# Characters that would break source column addressing
SOURCE_COLUMN_DELIMITERS = (",", ";", "|", "\t", "\r", "\n")

# Declared type -> normalized native type names it may be stored in
TYPE_COMPATIBILITY: dict[str, frozenset[str]] = {
    "string": frozenset({"text", "varchar", "char", "uuid", "citext"}),
    "number": frozenset(
        {"integer", "smallint", "bigint", "numeric", "decimal", "real", "float", "double"}
    ),
    "boolean": frozenset({"boolean"}),
    "date": frozenset({"timestamp", "timestamptz", "date", "datetime"}),
    "json": frozenset({"json", "jsonb"}),
}

_NATIVE_TYPE_ALIASES = {
    "character varying": "varchar",
    "nvarchar": "varchar",
    "string": "varchar",
    "character": "char",
    "nchar": "char",
    "bpchar": "char",
    "int": "integer",
    "int4": "integer",
    "serial": "integer",
    "int2": "smallint",
    "int8": "bigint",
    "bigserial": "bigint",
    "float4": "real",
    "float8": "double",
    "double precision": "double",
    "bool": "boolean",
    "timestamp with time zone": "timestamptz",
    "timestamp without time zone": "timestamp",
}

_TYPE_ARGS = re.compile(r"\(.*?\)")


def normalize_native_type(native_type: str) -> str:
    """Fold a database type name to the names used in TYPE_COMPATIBILITY.

    Lower-cases, strips length/precision arguments and collapses common
    aliases, so `VARCHAR(255)`, `character varying` and `varchar` all
    normalize to `varchar`.
    """
    name = _TYPE_ARGS.sub("", native_type.strip().lower())
    name = " ".join(name.split())
    return _NATIVE_TYPE_ALIASES.get(name, name)


def infer_data_type(native_type: str) -> str | None:
    """Get the declared type whose family contains a native type, if any."""
    normalized = normalize_native_type(native_type)
    for data_type, family in TYPE_COMPATIBILITY.items():
        if normalized in family:
            return data_type
    return None


class MappingValidator:
    """Checks a set of column mappings before a mapping may be enabled.

    Checks run in a fixed order and stop at the first failure:

    1. at least one column mapping
    2. no two mappings write the same sink column
    3. every source column name is well formed and exists in the source schema
    4. every sink column exists and its native type fits the declared type
    5. for bidirectional mappings, both columns of every pair are writable

    The validator performs no I/O. Schema snapshots are supplied by the caller.
    """

    SUCCESS_MESSAGE = "Column mappings are valid"

    def validate(
        self,
        column_mappings: list[ColumnMapping],
        sync_direction: str,
        source_schema: list[ColumnSchema],
        sink_schema: list[ColumnSchema],
    ) -> ValidationResult:
        """Validate column mappings.

        Args:
            column_mappings: Candidate column mappings.
            sync_direction: to_sink, to_source or bidirectional.
            source_schema: Columns of the source table.
            sink_schema: Columns of the sink table.

        Returns:
            ValidationResult with the first failure reason or a success message.
        """
        if not column_mappings:
            return self._fail("At least one column mapping is required")

        seen_sinks: set[str] = set()
        for mapping in column_mappings:
            if mapping.sink_column in seen_sinks:
                return self._fail(
                    f"Sink column {mapping.sink_column!r} is mapped more than once"
                )
            seen_sinks.add(mapping.sink_column)

        source_columns = {column.name: column for column in source_schema}
        for mapping in column_mappings:
            name = mapping.source_column
            if not name or not name.strip():
                return self._fail("Source column name must not be empty")
            if any(delimiter in name for delimiter in SOURCE_COLUMN_DELIMITERS):
                return self._fail(
                    f"Source column name {name!r} contains a delimiter character"
                )
            if name not in source_columns:
                return self._fail(f"Source column {name!r} does not exist in the source table")

        sink_columns = {column.name: column for column in sink_schema}
        for mapping in column_mappings:
            sink = sink_columns.get(mapping.sink_column)
            if sink is None:
                return self._fail(
                    f"Sink column {mapping.sink_column!r} does not exist in the sink table"
                )
            family = TYPE_COMPATIBILITY[mapping.data_type]
            if normalize_native_type(sink.native_type) not in family:
                expected = "/".join(sorted(family))
                return self._fail(
                    f"Column {mapping.sink_column!r} has type {sink.native_type!r}, "
                    f"which is not compatible with {mapping.data_type} "
                    f"(expected one of {expected})"
                )

        if sync_direction == "bidirectional":
            for mapping in column_mappings:
                if not source_columns[mapping.source_column].writable:
                    return self._fail(
                        f"Source column {mapping.source_column!r} is read-only and cannot "
                        "be used in a bidirectional mapping"
                    )
                if not sink_columns[mapping.sink_column].writable:
                    return self._fail(
                        f"Sink column {mapping.sink_column!r} is read-only and cannot "
                        "be used in a bidirectional mapping"
                    )

        return ValidationResult(is_valid=True, message=self.SUCCESS_MESSAGE)

    @staticmethod
    def _fail(message: str) -> ValidationResult:
        return ValidationResult(is_valid=False, message=message)
