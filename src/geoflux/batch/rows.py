"""Row parsing: one input row to a normalized query or a skip decision.

Every rejection here is a per-row skip that is logged and never raised; only
the pipeline decides what is fatal.
"""

from __future__ import annotations

import logging
import math
from typing import TYPE_CHECKING, NamedTuple

from geoflux.batch.options import Command
from geoflux.errors import InvalidInputError
from geoflux.query import format_reverse_query

if TYPE_CHECKING:
    from collections.abc import Sequence

    from geoflux.batch.options import BatchOptions

logger = logging.getLogger(__name__)

MIN_QUERY_LENGTH = 2


class ParsedRow(NamedTuple):
    query: str | None
    command: Command


def _is_finite_number(text: str) -> bool:
    try:
        return math.isfinite(float(text))
    except ValueError:
        return False


def _detect_command(parts: list[str], options: BatchOptions) -> Command:
    if options.command is not None:
        return options.command
    if (
        options.input_columns is not None
        and len(options.input_columns) == 2
        and all(_is_finite_number(p) for p in parts)
    ):
        return Command.REVERSE
    return Command.FORWARD


def parse_input_row(
    row: Sequence[str], row_id: int, options: BatchOptions
) -> ParsedRow:
    """Turn one raw input row into a query for a worker.

    Returns ``ParsedRow(None, ...)`` for rows that should be skipped: missing
    columns, all-empty fields, malformed coordinates, or a query shorter than
    two characters.
    """
    fields = [str(value) for value in row]
    if options.input_columns is not None:
        try:
            parts = [fields[idx - 1].strip() for idx in options.input_columns]
        except IndexError:
            logger.warning(
                "L%d: Missing input column index in row: %s. Skipping.", row_id, fields
            )
            return ParsedRow(None, Command.SKIP)
    else:
        parts = [value.strip() for value in fields]

    command = _detect_command(parts, options)

    if all(not p for p in parts):
        logger.warning(
            "L%d: Skipping row - no query data found in selected columns.", row_id
        )
        return ParsedRow(None, command)

    if command is Command.REVERSE:
        if len(parts) != 2:
            logger.warning(
                "L%d: Expected 2 columns/parts for reverse geocoding, found %d. Skipping row.",
                row_id,
                len(parts),
            )
            return ParsedRow(None, command)
        try:
            query = format_reverse_query(parts[0], parts[1])
        except InvalidInputError as exc:
            logger.warning("L%d: %s. Skipping row.", row_id, exc)
            return ParsedRow(None, command)
    else:
        query = ", ".join(p for p in parts if p)

    if len(query.strip()) < MIN_QUERY_LENGTH:
        logger.warning(
            "L%d: Query %r is too short (< %d chars) or empty. Skipping row.",
            row_id,
            query,
            MIN_QUERY_LENGTH,
        )
        return ParsedRow(None, command)

    return ParsedRow(query, command)
