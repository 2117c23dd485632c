"""Tagged Tables - SQLite-backed tables with typed, tagged columns and a search language."""

from tagged_tables.backup import BackupManager
from tagged_tables.config import Settings
from tagged_tables.databases import DatabaseManager
from tagged_tables.errors import (
    ConflictError,
    InconsistentStateError,
    InvariantError,
    NotFoundError,
    ProtectedColumnError,
    StorageError,
    TaggedTablesError,
    ValidationError,
)
from tagged_tables.rows import RowManager, SearchOptions, SearchResult
from tagged_tables.schema import SchemaEngine
from tagged_tables.search import CompiledFilter, compile_order, compile_search
from tagged_tables.types import (
    ColumnDefinition,
    ColumnType,
    DatabaseMetadata,
    TableDefinition,
    TagDefinition,
)

__all__ = [
    # Main API
    "DatabaseManager",
    "SchemaEngine",
    "RowManager",
    "BackupManager",
    "Settings",
    # Search
    "SearchOptions",
    "SearchResult",
    "CompiledFilter",
    "compile_search",
    "compile_order",
    # Definitions
    "ColumnType",
    "ColumnDefinition",
    "TableDefinition",
    "TagDefinition",
    "DatabaseMetadata",
    # Errors
    "TaggedTablesError",
    "NotFoundError",
    "ConflictError",
    "ValidationError",
    "ProtectedColumnError",
    "InvariantError",
    "StorageError",
    "InconsistentStateError",
]

__version__ = "0.1.0"
