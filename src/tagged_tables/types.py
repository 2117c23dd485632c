"""Column type catalog and schema definitions for tagged_tables."""

from __future__ import annotations

import copy
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum

from tagged_tables.errors import NotFoundError, ValidationError


class StorageType(Enum):
    """Physical SQLite column types."""

    TEXT = "TEXT"
    INTEGER = "INTEGER"
    REAL = "REAL"


class ColumnType(Enum):
    """Semantic column types supported by the schema engine."""

    STRING = "string"
    RICH_TEXT = "rich_text"
    BOOLEAN = "boolean"
    INTEGER = "integer"
    FLOAT = "float"
    DATE = "date"
    RATING = "rating"
    ADVANCED_RATING = "advanced_rating"
    SINGLE_TAG = "single_tag"
    MULTI_TAG = "multi_tag"
    CUSTOM = "custom"
    LINK = "link"

    @property
    def storage_type(self) -> StorageType:
        """Return the physical storage type for this column type."""
        storage = {
            ColumnType.STRING: StorageType.TEXT,
            ColumnType.RICH_TEXT: StorageType.TEXT,
            ColumnType.BOOLEAN: StorageType.INTEGER,
            ColumnType.INTEGER: StorageType.INTEGER,
            ColumnType.FLOAT: StorageType.REAL,
            ColumnType.DATE: StorageType.INTEGER,  # epoch milliseconds
            ColumnType.RATING: StorageType.INTEGER,  # 0 to 5
            ColumnType.ADVANCED_RATING: StorageType.REAL,  # 0.0 to 10.0
            ColumnType.SINGLE_TAG: StorageType.TEXT,
            ColumnType.MULTI_TAG: StorageType.TEXT,  # space-separated, sorted
            ColumnType.CUSTOM: StorageType.TEXT,
            ColumnType.LINK: StorageType.TEXT,  # JSON object
        }
        return storage[self]

    @property
    def is_tag(self) -> bool:
        """Return whether values of this type are drawn from a tag vocabulary."""
        return self in (ColumnType.SINGLE_TAG, ColumnType.MULTI_TAG)

    @property
    def is_numeric(self) -> bool:
        """Return whether search terms compare numerically against this type."""
        return self in (
            ColumnType.INTEGER,
            ColumnType.FLOAT,
            ColumnType.RATING,
            ColumnType.ADVANCED_RATING,
            ColumnType.BOOLEAN,
        )


# Mapping from type identifiers to ColumnType values
COLUMN_TYPE_NAMES: dict[str, ColumnType] = {ct.value: ct for ct in ColumnType}


def parse_column_type(name: str | ColumnType) -> ColumnType:
    """Look up a column type by identifier.

    Raises:
        ValidationError: If the identifier is not part of the catalog.
    """
    if isinstance(name, ColumnType):
        return name
    column_type = COLUMN_TYPE_NAMES.get(str(name).strip().lower())
    if column_type is None:
        raise ValidationError(
            f"Unknown column type '{name}'. "
            f"Expected one of: {', '.join(COLUMN_TYPE_NAMES)}",
            identifier=str(name),
        )
    return column_type


@dataclass
class TagDefinition:
    """A registered tag in a tag column's vocabulary."""

    name: str
    description: str = ""


@dataclass
class ColumnDefinition:
    """Schema record for one column of a table."""

    name: str
    type: ColumnType
    index: int
    hidden: bool = False
    tags: list[TagDefinition] = field(default_factory=list)
    rule: str = ""

    @property
    def is_protected(self) -> bool:
        return self.name in PROTECTED_COLUMN_NAMES

    @property
    def tag_names(self) -> list[str]:
        return [tag.name for tag in self.tags]

    def has_tag(self, name: str) -> bool:
        return any(tag.name == name for tag in self.tags)

    def reset_extras(self) -> None:
        """Reset type-specific data to the defaults for the current type."""
        self.tags = []
        self.rule = ""


@dataclass
class TableDefinition:
    """Metadata for a table: visibility and its column definitions."""

    hidden: bool = False
    columns: dict[str, ColumnDefinition] = field(default_factory=dict)

    def ordered_columns(self) -> list[ColumnDefinition]:
        """Return columns sorted by display index."""
        return sorted(self.columns.values(), key=lambda c: c.index)

    def get_column(self, name: str, table_name: str = "") -> ColumnDefinition:
        """Get a column by (already normalized) name.

        Raises:
            NotFoundError: If the column does not exist.
        """
        column = self.columns.get(name)
        if column is None:
            where = f" in table '{table_name}'" if table_name else ""
            raise NotFoundError(f"Column '{name}' not found{where}", identifier=name)
        return column

    def column_at(self, index: int) -> ColumnDefinition | None:
        for column in self.columns.values():
            if column.index == index:
                return column
        return None


@dataclass
class DatabaseMetadata:
    """Metadata side-record for one database."""

    id: str
    display_name: str
    created_at: str
    modified_at: str
    description: str = ""
    tags: list[str] = field(default_factory=list)
    hidden: bool = False
    version: int = 0
    tables: dict[str, TableDefinition] = field(default_factory=dict)

    def get_table(self, name: str) -> TableDefinition:
        """Get a table by (already normalized) name.

        Raises:
            NotFoundError: If the table does not exist.
        """
        table = self.tables.get(name)
        if table is None:
            raise NotFoundError(
                f"Table '{name}' not found in database '{self.id}'", identifier=name
            )
        return table

    def touch(self) -> None:
        """Stamp the modification time."""
        self.modified_at = now_iso()

    def copy(self) -> DatabaseMetadata:
        return copy.deepcopy(self)


# Protected columns: (name, type, hidden). Their order is their initial index.
PROTECTED_COLUMNS: tuple[tuple[str, ColumnType, bool], ...] = (
    ("id", ColumnType.INTEGER, False),
    ("title", ColumnType.STRING, False),
    ("content", ColumnType.RICH_TEXT, False),
    ("date_created", ColumnType.DATE, False),
    ("date_modified", ColumnType.DATE, False),
    ("hidden", ColumnType.BOOLEAN, True),
)

PROTECTED_COLUMN_NAMES: frozenset[str] = frozenset(name for name, _, _ in PROTECTED_COLUMNS)

# Range of SQLite's INTEGER storage class
INTEGER_MIN = -(2**63)
INTEGER_MAX = 2**63 - 1


def protected_column_definitions() -> dict[str, ColumnDefinition]:
    """Build fresh definitions for the protected columns of a new table."""
    return {
        name: ColumnDefinition(name=name, type=column_type, index=index, hidden=hidden)
        for index, (name, column_type, hidden) in enumerate(PROTECTED_COLUMNS)
    }


def now_ms() -> int:
    """Current time as epoch milliseconds."""
    return int(time.time() * 1000)


def now_iso() -> str:
    """Current UTC time as an ISO-8601 string with millisecond precision."""
    stamp = datetime.now(timezone.utc).isoformat(timespec="milliseconds")
    return stamp.replace("+00:00", "Z")
