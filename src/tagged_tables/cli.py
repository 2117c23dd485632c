"""Command-line interface for tagged tables."""

from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path
from typing import Any, Callable, Mapping, Sequence

from tagged_tables.backup import BackupManager
from tagged_tables.config import Settings
from tagged_tables.databases import DatabaseManager
from tagged_tables.errors import TaggedTablesError, ValidationError
from tagged_tables.logging import configure_logging, get_logger
from tagged_tables.names import normalize_name
from tagged_tables.rows import RowManager, SearchOptions
from tagged_tables.schema import SchemaEngine
from tagged_tables.types import COLUMN_TYPE_NAMES, ColumnDefinition, ColumnType, DatabaseMetadata

logger = get_logger(__name__)


class Context:
    """Managers bound to one resolved set of settings."""

    def __init__(self, settings: Settings) -> None:
        self.settings = settings
        self.databases = DatabaseManager(settings.data_dir)
        self.schema: SchemaEngine = self.databases.schema
        self.rows = RowManager(self.schema)
        self.backups = BackupManager(settings.data_dir, settings.backup_dir, self.databases.metadata)


def format_value(value: Any, max_width: int = 40) -> str:
    """Format a stored value for display."""
    if value is None:
        return "NULL"
    elif isinstance(value, bool):
        return "true" if value else "false"
    elif isinstance(value, float):
        return f"{value:.6g}"
    s = str(value)
    if len(s) > max_width:
        return s[: max_width - 3] + "..."
    return s


def print_table(columns: Sequence[str], rows: Sequence[dict[str, Any]]) -> None:
    """Print rows as an aligned table."""
    if not rows:
        print("(no results)")
        return

    col_widths = {col: len(col) for col in columns}
    for row in rows:
        for col in columns:
            col_widths[col] = max(col_widths[col], len(format_value(row.get(col))))

    header = " | ".join(col.ljust(col_widths[col]) for col in columns)
    print(header)
    print("-" * len(header))
    for row in rows:
        print(" | ".join(format_value(row.get(col)).ljust(col_widths[col]) for col in columns))

    print(f"\n({len(rows)} row{'s' if len(rows) != 1 else ''})")


def parse_assignment(
    text: str, columns: Mapping[str, ColumnDefinition] | None = None
) -> tuple[str, Any]:
    """Parse ``key=value`` for a column of the target table.

    Values for numeric, boolean and date columns are decoded as JSON. Every
    other value, including one for a key naming no column, stays text.
    """
    key, sep, raw = text.partition("=")
    if not sep or not key.strip():
        raise ValidationError(f"Expected key=value, got {text!r}")
    column = (columns or {}).get(normalize_name(key))
    if column is None or not (column.type.is_numeric or column.type == ColumnType.DATE):
        return key, raw
    try:
        return key, json.loads(raw)
    except ValueError:
        return key, raw


def _visibility(value: str) -> bool:
    if value not in ("hidden", "visible"):
        raise argparse.ArgumentTypeError("expected 'hidden' or 'visible'")
    return value == "hidden"


def _print_databases(databases: Sequence[DatabaseMetadata]) -> None:
    print_table(
        ["id", "name", "hidden", "created", "modified"],
        [
            {
                "id": db.id,
                "name": db.display_name,
                "hidden": db.hidden,
                "created": db.created_at,
                "modified": db.modified_at,
            }
            for db in databases
        ],
    )


def _print_columns(columns: Sequence[ColumnDefinition]) -> None:
    print_table(
        ["index", "name", "type", "hidden", "extras"],
        [
            {
                "index": col.index,
                "name": col.name,
                "type": col.type.value,
                "hidden": col.hidden,
                "extras": " ".join(col.tag_names) or col.rule,
            }
            for col in columns
        ],
    )


def _print_rows(ctx: Context, db: str, table: str, rows: Sequence[dict[str, Any]]) -> None:
    columns = [col.name for col in ctx.schema.list_columns(db, table)]
    print_table(columns, rows)


# --- Command handlers ---


def cmd_db_create(ctx: Context, args: argparse.Namespace) -> None:
    meta = ctx.databases.create(args.name, args.description)
    print(f"Created database {meta.id}")


def cmd_db_list(ctx: Context, args: argparse.Namespace) -> None:
    _print_databases(ctx.databases.list(include_hidden=args.all))


def cmd_db_show(ctx: Context, args: argparse.Namespace) -> None:
    meta = ctx.databases.get(args.db)
    _print_databases([meta])
    if meta.description:
        print(meta.description)


def cmd_db_rename(ctx: Context, args: argparse.Namespace) -> None:
    meta = ctx.databases.rename(args.db, args.name)
    print(f"Renamed database {args.db} to {meta.id}")


def cmd_db_visibility(ctx: Context, args: argparse.Namespace) -> None:
    ctx.databases.set_visibility(args.db, args.state)


def cmd_db_delete(ctx: Context, args: argparse.Namespace) -> None:
    ctx.databases.delete(args.db)
    print(f"Deleted database {args.db}")


def cmd_table_list(ctx: Context, args: argparse.Namespace) -> None:
    tables = ctx.schema.list_tables(args.db)
    print_table(
        ["name", "hidden", "columns"],
        [
            {"name": name, "hidden": table.hidden, "columns": len(table.columns)}
            for name, table in tables.items()
        ],
    )


def cmd_table_create(ctx: Context, args: argparse.Namespace) -> None:
    ctx.schema.create_table(args.db, args.table)
    print(f"Created table {args.table}")


def cmd_table_rename(ctx: Context, args: argparse.Namespace) -> None:
    ctx.schema.rename_table(args.db, args.table, args.new_name)


def cmd_table_visibility(ctx: Context, args: argparse.Namespace) -> None:
    ctx.schema.set_table_visibility(args.db, args.table, args.state)


def cmd_table_delete(ctx: Context, args: argparse.Namespace) -> None:
    ctx.schema.delete_table(args.db, args.table)
    print(f"Deleted table {args.table}")


def cmd_table_check(ctx: Context, args: argparse.Namespace) -> None:
    problems = ctx.schema.check_table(args.db, args.table)
    for problem in problems:
        print(problem)
    if problems:
        raise TaggedTablesError(
            f"Table '{args.table}' has {len(problems)} problem(s)", identifier=args.table
        )
    print("OK")


def cmd_column_list(ctx: Context, args: argparse.Namespace) -> None:
    _print_columns(ctx.schema.list_columns(args.db, args.table))


def cmd_column_create(ctx: Context, args: argparse.Namespace) -> None:
    col = ctx.schema.create_column(
        args.db, args.table, args.column, args.type, hidden=args.hidden, index=args.index
    )
    print(f"Created column {col.name} at index {col.index}")


def cmd_column_edit(ctx: Context, args: argparse.Namespace) -> None:
    ctx.schema.rename_or_retype_column(
        args.db, args.table, args.column, new_name=args.name, new_type=args.type
    )


def cmd_column_visibility(ctx: Context, args: argparse.Namespace) -> None:
    ctx.schema.set_column_visibility(args.db, args.table, args.column, args.state)


def cmd_column_swap(ctx: Context, args: argparse.Namespace) -> None:
    ctx.schema.swap_column_index(args.db, args.table, args.column, args.index)


def cmd_column_move(ctx: Context, args: argparse.Namespace) -> None:
    ctx.schema.move_column_index(args.db, args.table, args.column, args.index)


def cmd_column_delete(ctx: Context, args: argparse.Namespace) -> None:
    ctx.schema.delete_column(args.db, args.table, args.column)


def cmd_column_add_tag(ctx: Context, args: argparse.Namespace) -> None:
    ctx.schema.register_tag(args.db, args.table, args.column, args.tag, args.description)


def cmd_column_remove_tag(ctx: Context, args: argparse.Namespace) -> None:
    ctx.schema.unregister_tag(args.db, args.table, args.column, args.tag)


def cmd_column_rule(ctx: Context, args: argparse.Namespace) -> None:
    ctx.schema.update_custom_rule(args.db, args.table, args.column, args.rule)


def _row_data(ctx: Context, args: argparse.Namespace) -> dict[str, Any]:
    columns = {col.name: col for col in ctx.schema.list_columns(args.db, args.table)}
    return dict(parse_assignment(item, columns) for item in args.values)


def cmd_row_create(ctx: Context, args: argparse.Namespace) -> None:
    data = _row_data(ctx, args)
    row = ctx.rows.create_row(args.db, args.table, data)
    _print_rows(ctx, args.db, args.table, [row])


def cmd_row_get(ctx: Context, args: argparse.Namespace) -> None:
    _print_rows(ctx, args.db, args.table, [ctx.rows.get_row(args.db, args.table, args.id)])


def cmd_row_update(ctx: Context, args: argparse.Namespace) -> None:
    data = _row_data(ctx, args)
    row = ctx.rows.update_row(args.db, args.table, args.id, data)
    _print_rows(ctx, args.db, args.table, [row])


def cmd_row_visibility(ctx: Context, args: argparse.Namespace) -> None:
    ctx.rows.set_row_visibility(args.db, args.table, args.id, args.state)


def cmd_row_delete(ctx: Context, args: argparse.Namespace) -> None:
    ctx.rows.delete_row(args.db, args.table, args.id)


def cmd_search(ctx: Context, args: argparse.Namespace) -> None:
    options = SearchOptions(
        query=" ".join(args.query) or None,
        sort=args.sort,
        descending=args.desc,
        random=args.random,
        limit=args.limit,
        offset=args.offset,
        include_hidden=args.all,
    )
    result = ctx.rows.search_rows(args.db, args.table, options)
    _print_rows(ctx, args.db, args.table, result.rows)
    print(f"{result.filtered} of {result.total} rows match")


def cmd_backup_create(ctx: Context, args: argparse.Namespace) -> None:
    print(f"Created backup {ctx.backups.create(args.db)}")


def cmd_backup_list(ctx: Context, args: argparse.Namespace) -> None:
    for name in ctx.backups.list():
        print(name)


def cmd_backup_restore(ctx: Context, args: argparse.Namespace) -> None:
    print(f"Restored as database {ctx.backups.restore(args.name)}")


def cmd_backup_delete(ctx: Context, args: argparse.Namespace) -> None:
    ctx.backups.delete(args.name)
    print(f"Deleted backup {args.name}")


# --- Argument parsing ---


def _command(
    group: argparse._SubParsersAction,
    name: str,
    handler: Callable[[Context, argparse.Namespace], None],
    help_text: str,
    *arguments: str,
) -> argparse.ArgumentParser:
    parser = group.add_parser(name, help=help_text)
    for argument in arguments:
        parser.add_argument(argument)
    parser.set_defaults(handler=handler)
    return parser


def build_parser() -> argparse.ArgumentParser:
    arg_parser = argparse.ArgumentParser(
        prog="tagged-tables",
        description="Manage databases of tables with typed, tagged columns",
    )
    arg_parser.add_argument("--data-dir", type=Path, help="Directory holding databases")
    arg_parser.add_argument("--backup-dir", type=Path, help="Directory holding backups")
    arg_parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    groups = arg_parser.add_subparsers(dest="group", required=True)

    db = groups.add_parser("db", help="Manage databases").add_subparsers(dest="command", required=True)
    p = _command(db, "create", cmd_db_create, "Create a database", "name")
    p.add_argument("--description", default="")
    p = _command(db, "list", cmd_db_list, "List databases")
    p.add_argument("--all", action="store_true", help="Include hidden databases")
    _command(db, "show", cmd_db_show, "Show one database", "db")
    _command(db, "rename", cmd_db_rename, "Rename a database", "db", "name")
    p = _command(db, "visibility", cmd_db_visibility, "Hide or show a database", "db")
    p.add_argument("state", type=_visibility)
    _command(db, "delete", cmd_db_delete, "Delete a database", "db")

    table = groups.add_parser("table", help="Manage tables").add_subparsers(dest="command", required=True)
    _command(table, "list", cmd_table_list, "List tables", "db")
    _command(table, "create", cmd_table_create, "Create a table", "db", "table")
    _command(table, "rename", cmd_table_rename, "Rename a table", "db", "table", "new_name")
    p = _command(table, "visibility", cmd_table_visibility, "Hide or show a table", "db", "table")
    p.add_argument("state", type=_visibility)
    _command(table, "delete", cmd_table_delete, "Delete a table", "db", "table")
    _command(table, "check", cmd_table_check, "Compare a table with its metadata", "db", "table")

    column = groups.add_parser("column", help="Manage columns").add_subparsers(dest="command", required=True)
    _command(column, "list", cmd_column_list, "List columns", "db", "table")
    p = _command(column, "create", cmd_column_create, "Create a column", "db", "table", "column")
    p.add_argument("type", choices=COLUMN_TYPE_NAMES)
    p.add_argument("--hidden", action="store_true")
    p.add_argument("--index", type=int)
    p = _command(column, "edit", cmd_column_edit, "Rename or retype a column", "db", "table", "column")
    p.add_argument("--name")
    p.add_argument("--type", choices=COLUMN_TYPE_NAMES)
    p = _command(column, "visibility", cmd_column_visibility, "Hide or show a column", "db", "table", "column")
    p.add_argument("state", type=_visibility)
    p = _command(column, "swap", cmd_column_swap, "Swap a column's index with another", "db", "table", "column")
    p.add_argument("index", type=int)
    p = _command(column, "move", cmd_column_move, "Move a column to an index", "db", "table", "column")
    p.add_argument("index", type=int)
    _command(column, "delete", cmd_column_delete, "Delete a column", "db", "table", "column")
    p = _command(column, "add-tag", cmd_column_add_tag, "Register a tag", "db", "table", "column", "tag")
    p.add_argument("--description", default="")
    _command(column, "remove-tag", cmd_column_remove_tag, "Unregister a tag", "db", "table", "column", "tag")
    _command(column, "rule", cmd_column_rule, "Set a custom column's rule", "db", "table", "column", "rule")

    row = groups.add_parser("row", help="Manage rows").add_subparsers(dest="command", required=True)
    p = _command(row, "create", cmd_row_create, "Create a row", "db", "table")
    p.add_argument("values", nargs="+", metavar="key=value")
    for name, handler, help_text in (
        ("get", cmd_row_get, "Show one row"),
        ("delete", cmd_row_delete, "Delete a row"),
    ):
        p = _command(row, name, handler, help_text, "db", "table")
        p.add_argument("id", type=int)
    p = _command(row, "update", cmd_row_update, "Update a row", "db", "table")
    p.add_argument("id", type=int)
    p.add_argument("values", nargs="+", metavar="key=value")
    p = _command(row, "visibility", cmd_row_visibility, "Hide or show a row", "db", "table")
    p.add_argument("id", type=int)
    p.add_argument("state", type=_visibility)

    p = groups.add_parser("search", help="Search rows of a table")
    p.add_argument("db")
    p.add_argument("table")
    p.add_argument("query", nargs="*")
    p.add_argument("--sort", help="Column name or i<index> to sort by")
    p.add_argument("--desc", action="store_true")
    p.add_argument("--random", action="store_true")
    p.add_argument("--limit", type=int)
    p.add_argument("--offset", type=int, default=0)
    p.add_argument("--all", action="store_true", help="Include hidden rows")
    p.set_defaults(handler=cmd_search)

    backup = groups.add_parser("backup", help="Manage backups").add_subparsers(dest="command", required=True)
    _command(backup, "create", cmd_backup_create, "Back up a database", "db")
    _command(backup, "list", cmd_backup_list, "List backups")
    _command(backup, "restore", cmd_backup_restore, "Restore a backup", "name")
    _command(backup, "delete", cmd_backup_delete, "Delete a backup", "name")

    return arg_parser


def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    args = build_parser().parse_args(argv)

    settings = Settings.from_env().override(
        data_dir=args.data_dir,
        backup_dir=args.backup_dir,
        log_level="DEBUG" if args.verbose else None,
    )
    configure_logging(settings.log_level)
    logger.debug("Data directory %s, backup directory %s", settings.data_dir, settings.backup_dir)

    try:
        args.handler(Context(settings), args)
    except TaggedTablesError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
