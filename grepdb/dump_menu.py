from pathlib import Path

from rich.console import Console
from rich.table import Table

from grepdb.exceptions import ParserError, TokenizerError
from grepdb.metadata import TableMetadata
from grepdb.metadata_factory import DumpMetadataFactory

console = Console()


def inspect_dump_menu():
    """Prompt for a mysqldump file and show the tables and columns it defines"""
    try:
        file_path = console.input("Enter the path of the SQL dump file: ").strip()
    except (KeyboardInterrupt, EOFError):
        console.print("\n❌ Operation cancelled by user", style="bold yellow")
        return

    if not file_path:
        console.print("❌ No file path given!", style="bold red")
        return

    inspect_dump(Path(file_path).expanduser())


def inspect_dump(file_path: Path):
    console.print(f"\n📄 Parsing {file_path}...", style="cyan")

    try:
        database = DumpMetadataFactory(file_path, database_name=file_path.name).get_database_metadata()
    except (TokenizerError, ParserError) as e:
        console.print(f"❌ Could not parse dump: {e}", style="bold red")
        return False

    if not database.tables:
        console.print("⚠️ No CREATE TABLE statements found.", style="bold yellow")
        return True

    for table in database.tables.values():
        console.print(build_table_view(table))

    searchable = sum(1 for table in database.tables.values() if table.has_string_type_column())
    console.print(
        f"📊 {len(database.tables)} tables found, {searchable} with text columns that search and replace would scan",
        style="bold green",
    )
    return True


def build_table_view(table: TableMetadata) -> Table:
    """Rich table describing the columns of a parsed table"""
    view = Table(
        title=f"🗂️  {table.table_name} (engine: {table.engine}, charset: {table.charset}, collation: {table.collation})",
        expand=True,
        show_lines=False,
    )
    view.add_column("Column", style="cyan")
    view.add_column("Type")
    view.add_column("Max Length", justify="right")
    view.add_column("Primary Key", justify="center")
    view.add_column("Nullable", justify="center")
    view.add_column("Indexed", justify="center")
    view.add_column("Searched", justify="center")

    for column in table.columns.values():
        view.add_row(
            column.column_name,
            column.type,
            "" if column.max_length is None else str(column.max_length),
            "✅" if column.primary_key else "",
            "✅" if column.nullable else "",
            "✅" if column.indexed else "",
            "🔍" if column.is_string_type() else "",
        )

    return view
