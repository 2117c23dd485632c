"""Value validation against column definitions."""

from __future__ import annotations

import json
import math
import re
from typing import Any, Sequence

from tagged_tables.errors import InvariantError, ValidationError
from tagged_tables.names import normalize_name
from tagged_tables.types import INTEGER_MAX, INTEGER_MIN, ColumnDefinition, ColumnType


def validate(column: ColumnDefinition, value: Any) -> Any:
    """Check a candidate value against a column and return the value to store.

    Raises:
        ValidationError: If the value does not conform to the column's type.
        InvariantError: If the column carries a type outside the catalog.
    """
    column_type = column.type

    if column_type in (ColumnType.STRING, ColumnType.RICH_TEXT):
        if not isinstance(value, str):
            raise _error(column, f"must be a string, got {_describe(value)}")
        return value

    elif column_type == ColumnType.BOOLEAN:
        if not (_is_number(value) or isinstance(value, bool)) or value not in (0, 1):
            raise _error(column, f"must be 0 or 1, got {_describe(value)}")
        return int(value)

    elif column_type == ColumnType.INTEGER:
        if not _is_integral(value):
            raise _error(column, f"must be an integer, got {_describe(value)}")
        if not INTEGER_MIN <= value <= INTEGER_MAX:
            raise _error(column, f"must fit in a 64-bit integer, got {value!r}")
        return int(value)

    elif column_type == ColumnType.FLOAT:
        if not _is_number(value):
            raise _error(column, f"must be a number, got {_describe(value)}")
        if isinstance(value, int) and not INTEGER_MIN <= value <= INTEGER_MAX:
            raise _error(column, f"must fit in a 64-bit integer, got {value!r}")
        if not math.isfinite(value):
            raise _error(column, f"must be a finite number, got {_describe(value)}")
        return value

    elif column_type == ColumnType.DATE:
        if not _is_integral(value) or not 0 < value <= INTEGER_MAX:
            raise _error(
                column,
                f"must be a positive epoch-millisecond timestamp, got {_describe(value)}",
            )
        return int(value)

    elif column_type == ColumnType.RATING:
        if not _is_integral(value) or not 0 <= value <= 5:
            raise _error(column, f"must be an integer from 0 to 5, got {_describe(value)}")
        return int(value)

    elif column_type == ColumnType.ADVANCED_RATING:
        if not _is_number(value) or not 0.0 <= value <= 10.0:
            raise _error(
                column, f"must be a number from 0.0 to 10.0, got {_describe(value)}"
            )
        return value

    elif column_type in (ColumnType.SINGLE_TAG, ColumnType.MULTI_TAG):
        return process_tag_value(column, value)

    elif column_type == ColumnType.CUSTOM:
        return _validate_custom(column, value)

    elif column_type == ColumnType.LINK:
        return _validate_link(column, value)

    raise InvariantError(
        f"Column '{column.name}' has unknown type {column_type!r}", identifier=column.name
    )


def process_tag_value(column: ColumnDefinition, value: Any) -> str:
    """Normalize tag input and check it against the column's vocabulary.

    Accepts a whitespace-separated string or a sequence of strings. Returns
    the tags de-duplicated, sorted and joined by single spaces.
    """
    if isinstance(value, str):
        tokens: Sequence[Any] = value.split()
    elif isinstance(value, (list, tuple)):
        tokens = value
    else:
        raise _error(
            column, f"tags must be a space-separated string or a list, got {_describe(value)}"
        )

    normalized = []
    for token in tokens:
        if not isinstance(token, str):
            raise _error(column, f"tags must be strings, got {_describe(token)}")
        # A sequence element may itself contain whitespace
        normalized.extend(normalize_name(part) for part in token.split())
    normalized = [tag for tag in normalized if tag]

    allowed = set(column.tag_names)
    for tag in normalized:
        if tag not in allowed:
            raise ValidationError(
                f"Tag '{tag}' is not registered in column '{column.name}'", identifier=tag
            )

    unique = sorted(set(normalized))
    if column.type == ColumnType.SINGLE_TAG and len(unique) > 1:
        raise _error(column, f"accepts a single tag, got {len(unique)}: {' '.join(unique)}")
    return " ".join(unique)


def compile_rule(column: ColumnDefinition, rule: str) -> re.Pattern[str]:
    """Compile a custom column's validation rule.

    Raises:
        ValidationError: If the rule is not a valid pattern.
    """
    try:
        return re.compile(rule)
    except re.error as e:
        raise ValidationError(
            f"Invalid rule for column '{column.name}': {rule!r} ({e})", identifier=rule
        ) from e


def _validate_custom(column: ColumnDefinition, value: Any) -> str:
    if not isinstance(value, str):
        raise _error(column, f"must be a string, got {_describe(value)}")
    if column.rule:
        pattern = compile_rule(column, column.rule)
        if pattern.search(value) is None:
            raise _error(column, f"value {value!r} does not match rule {column.rule!r}")
    return value


def _validate_link(column: ColumnDefinition, value: Any) -> str:
    message = (
        "must be a JSON string of the form "
        '{"displayName": "<non-empty string>", "url": "<string>"}'
    )
    if not isinstance(value, str):
        raise _error(column, message)
    try:
        parsed = json.loads(value)
    except ValueError as e:
        raise _error(column, message) from e
    if (
        not isinstance(parsed, dict)
        or not isinstance(parsed.get("displayName"), str)
        or not parsed["displayName"]
        or not isinstance(parsed.get("url"), str)
    ):
        raise _error(column, message)
    return value


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _is_integral(value: Any) -> bool:
    if isinstance(value, bool):
        return False
    if isinstance(value, int):
        return True
    return isinstance(value, float) and value.is_integer()


def _describe(value: Any) -> str:
    return f"{value!r} ({type(value).__name__})"


def _error(column: ColumnDefinition, detail: str) -> ValidationError:
    return ValidationError(
        f"Value for {column.type.value} column '{column.name}' {detail}",
        identifier=column.name,
    )
