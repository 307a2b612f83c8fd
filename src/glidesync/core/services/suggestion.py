"""Heuristic column mapping suggestions."""

import logging
import re

from glidesync.core.models import ColumnMappingSuggestion, ColumnSchema
from glidesync.core.services.validation import infer_data_type

logger = logging.getLogger(__name__)

EXACT_CONFIDENCE = 1.0
PREFIX_CONFIDENCE = 0.75
SUBSTRING_CONFIDENCE = 0.5

# Glide's row identity and the sink column conventionally holding it
ROW_ID_SOURCE = "$rowID"
ROW_ID_SINK = "glide_row_id"

_NON_ALNUM = re.compile(r"[^0-9a-z]+")


def normalize_column_name(name: str) -> str:
    """Lower-case a column name and fold runs of other characters to `_`.

    "Total Amount" and "total-amount" both become "total_amount".
    """
    return _NON_ALNUM.sub("_", name.lower()).strip("_")


def suggest_column_mappings(
    sink_schema: list[ColumnSchema],
    source_columns: list[str],
) -> list[ColumnMappingSuggestion]:
    """Propose column mappings by comparing column names.

    All exact matches are claimed first, then prefix matches, then substring
    matches, so a weak match never takes a sink column that another source
    column matches exactly. Each sink column is proposed at most once. The
    declared type comes from the sink column's native type; sink columns of
    a type outside the compatibility table are never proposed.

    Suggestions are not persisted and must still pass validation.

    Args:
        sink_schema: Columns of the sink table.
        source_columns: Column names of the source table.

    Returns:
        Suggestions in source column order.
    """
    candidates: list[tuple[ColumnSchema, str, str]] = []
    for column in sink_schema:
        data_type = infer_data_type(column.native_type)
        if data_type is None:
            continue
        candidates.append((column, normalize_column_name(column.name), data_type))

    claimed: set[str] = set()
    chosen: dict[str, ColumnMappingSuggestion] = {}

    def _claim(source: str, column: ColumnSchema, data_type: str, confidence: float) -> None:
        claimed.add(column.name)
        chosen[source] = ColumnMappingSuggestion(
            source_column=source,
            sink_column=column.name,
            data_type=data_type,
            confidence=confidence,
        )

    for source in source_columns:
        if source == ROW_ID_SOURCE:
            for column, _, data_type in candidates:
                if column.name == ROW_ID_SINK and column.name not in claimed:
                    _claim(source, column, data_type, EXACT_CONFIDENCE)
                    break

    matchers = (
        (EXACT_CONFIDENCE, lambda src, snk: src == snk),
        (PREFIX_CONFIDENCE, lambda src, snk: src.startswith(snk) or snk.startswith(src)),
        (SUBSTRING_CONFIDENCE, lambda src, snk: src in snk or snk in src),
    )
    for confidence, matches in matchers:
        for source in source_columns:
            if source in chosen:
                continue
            normalized = normalize_column_name(source)
            if not normalized:
                continue
            for column, sink_name, data_type in candidates:
                if column.name in claimed or not sink_name:
                    continue
                if matches(normalized, sink_name):
                    _claim(source, column, data_type, confidence)
                    break

    suggestions = [chosen[source] for source in source_columns if source in chosen]
    logger.debug(
        f"Suggested {len(suggestions)} column mapping(s) for {len(source_columns)} source column(s)"
    )
    return suggestions
