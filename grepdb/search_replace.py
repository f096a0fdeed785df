import datetime
import json
from pathlib import Path
from typing import Dict, List

import inquirer
from rich.console import Console
from rich.progress import Progress
from rich.table import Table
from rich.text import Text
from sqlalchemy.exc import SQLAlchemyError

from grepdb.config import load_settings
from grepdb.db_utils import check_db_connection_with_friendly_error
from grepdb.exceptions import GrepDbError
from grepdb.grepdb import connect
from grepdb.results import RowReplaceResult, RowSearchResult
from grepdb.search import as_text

console = Console()

# Rows kept per table for previews; counts cover every row
PREVIEW_LIMIT = 10


class SearchReplaceSession:
    """State of one interactive search and replace session"""

    def __init__(self, backups_dir=Path("backups")):
        self.search_term = ""
        self.replace_term = None
        self.selected_tables = []
        self.match_counts = {}   # table_name: matching row count
        self.preview_rows = {}   # table_name: [RowSearchResult, ...]
        self.backups_dir = Path(backups_dir)
        self.journal_file = None

    @property
    def total_matches(self) -> int:
        return sum(self.match_counts.values())

    def reset_results(self):
        self.match_counts = {}
        self.preview_rows = {}

    def create_journal_file(self) -> Path:
        """Create the JSON change journal for this session"""
        self.backups_dir.mkdir(parents=True, exist_ok=True)
        timestamp = datetime.datetime.now().strftime("%Y%m%d_%H%M%S")
        self.journal_file = self.backups_dir / f"search_replace_{timestamp}.json"

        journal = {
            "timestamp": timestamp,
            "search_term": self.search_term,
            "replace_term": self.replace_term,
            "tables": self.selected_tables,
            "changes": [],
            "errors": [],
        }
        with open(self.journal_file, 'w', encoding='utf-8') as f:
            json.dump(journal, f, indent=2)

        return self.journal_file

    def write_journal(self, changes: List[Dict], errors: List[str]):
        with open(self.journal_file, 'r', encoding='utf-8') as f:
            journal = json.load(f)

        journal["changes"] = changes
        journal["errors"] = errors

        with open(self.journal_file, 'w', encoding='utf-8') as f:
            json.dump(journal, f, indent=2, default=str)


def journal_entries(result: RowReplaceResult) -> List[Dict]:
    """One journal entry per column written back for a row"""
    row = result.row
    new_values = {field.metadata.column_name: field.new_value for field in result.field_results}

    primary_key = row.primary_key_value
    if len(row.primary_key_values) > 1:
        primary_key = dict(row.primary_key_values)

    entries = []
    for column_name in result.updated_columns:
        entries.append({
            "table": row.table.table_name,
            "primary_key": primary_key,
            "column": column_name,
            "original_value": as_text(row.get_column_result(column_name).value),
            "new_value": new_values[column_name],
        })
    return entries


def search_and_replace_menu():
    """Main search and replace menu function"""
    console.print("\n🔄 Search and Replace Tool", style="bold blue")
    console.print("Replaces text across tables, keeping PHP serialized values intact.", style="dim")
    console.print("⚠️  This is a powerful tool - use with caution!", style="bold yellow")

    if not check_db_connection_with_friendly_error():
        return

    session = SearchReplaceSession(load_settings().backups_dir)

    while True:
        if not session.search_term:
            if not _get_search_term(session):
                return  # User cancelled

        choice = _show_main_menu(session)

        if choice == "Configure Search Term":
            if not _get_search_term(session):
                return
        elif choice == "Select Tables":
            _select_tables(session)
        elif choice == "Find Matches":
            _find_matches(session)
        elif choice == "Preview Matches":
            _preview_matches(session)
        elif choice == "Set Replace Text":
            _get_replace_term(session)
        elif choice == "Execute Replace (Dry Run)":
            _execute_replace(session, dry_run=True)
        elif choice == "Execute Replace":
            _execute_replace(session, dry_run=False)
        elif choice in ("Exit", None):
            break


def search_menu():
    """Count matching rows per table and show highlighted matches for a chosen table"""
    if not check_db_connection_with_friendly_error():
        return

    session = SearchReplaceSession()
    if not _get_search_term(session):
        return

    try:
        settings = load_settings()
        with connect() as grep:
            session.selected_tables = _prefixed_tables(grep.list_tables(), settings.table_prefix)
        _find_matches(session)
    except (GrepDbError, SQLAlchemyError) as e:
        console.print(f"❌ Search failed: {e}", style="bold red")
        return

    if not session.match_counts:
        return

    questions = [
        inquirer.List(
            "selected_table",
            message="Select a table to view results",
            choices=list(session.match_counts.keys()) + ["Back"],
        )
    ]
    answers = inquirer.prompt(questions)
    if not answers or answers["selected_table"] == "Back":
        return

    table_name = answers["selected_table"]
    show_table_matches_preview(table_name, session.preview_rows.get(table_name, []), session.search_term)


def _prefixed_tables(table_names, table_prefix):
    return [name for name in table_names if name.startswith(table_prefix)]


def _get_search_term(session: SearchReplaceSession) -> bool:
    """Get the search term from user"""
    try:
        default_text = session.search_term
        prompt_text = "Enter the text to search for"
        if default_text:
            prompt_text += f" [default: {default_text}]"
        prompt_text += ": "

        search_term = console.input(prompt_text)

        if not search_term.strip() and default_text:
            search_term = default_text

        search_term = search_term.strip()
        if not search_term:
            console.print("❌ Search term cannot be empty!", style="bold red")
            return False

        session.search_term = search_term
        session.reset_results()

        console.print(f"✅ Search term set to: '{search_term}'", style="bold green")
        return True
    except (KeyboardInterrupt, EOFError):
        console.print("\n❌ Operation cancelled by user", style="bold yellow")
        return False


def _show_main_menu(session: SearchReplaceSession):
    """Show the main menu and return user choice"""
    status_info = [f"Search Term: '{session.search_term}'"]

    if session.selected_tables:
        status_info.append(f"Tables Selected: {len(session.selected_tables)}")
    else:
        status_info.append("Tables Selected: None")

    if session.match_counts:
        status_info.append(f"Total Matches Found: {session.total_matches}")

    if session.replace_term is not None:
        status_info.append(f"Replace With: '{session.replace_term}'")

    console.print("\n📊 Current Configuration:", style="bold")
    for info in status_info:
        console.print(f"  • {info}", style="dim")

    choices = [
        "Configure Search Term",
        "Select Tables",
        "Find Matches",
        "Preview Matches",
        "Set Replace Text",
        "Execute Replace (Dry Run)",
        "Execute Replace",
        "Exit",
    ]

    # Hide actions that can't run yet
    if not session.selected_tables:
        choices = [c for c in choices if c not in ["Find Matches", "Preview Matches", "Execute Replace (Dry Run)", "Execute Replace"]]

    if not session.match_counts:
        choices = [c for c in choices if c not in ["Preview Matches", "Execute Replace (Dry Run)", "Execute Replace"]]

    if session.replace_term is None:
        choices = [c for c in choices if c not in ["Execute Replace (Dry Run)", "Execute Replace"]]

    questions = [
        inquirer.List(
            "choice",
            message="Select an action",
            choices=choices,
        )
    ]
    answers = inquirer.prompt(questions)
    return answers["choice"] if answers else None


def _select_tables(session: SearchReplaceSession):
    """Allow user to select tables for search and replace"""
    try:
        settings = load_settings()
        with connect() as grep:
            all_tables = grep.list_tables()
    except (GrepDbError, SQLAlchemyError) as e:
        console.print(f"❌ Error selecting tables: {e}", style="bold red")
        return

    if not all_tables:
        console.print("❌ No tables found in database!", style="bold red")
        return

    tables = _prefixed_tables(all_tables, settings.table_prefix)
    if not tables:
        console.print(f"❌ No tables found with prefix '{settings.table_prefix}'!", style="bold red")
        return

    choices = ["All Tables", "None"] + tables
    questions = [
        inquirer.Checkbox(
            "tables",
            message="Select tables to search (use SPACE to select, ENTER to confirm)",
            choices=choices,
            default=session.selected_tables,
        )
    ]
    answers = inquirer.prompt(questions)
    if not answers:
        return

    selected = answers["tables"]
    if "All Tables" in selected:
        session.selected_tables = tables
    elif "None" in selected:
        session.selected_tables = []
    else:
        session.selected_tables = [table for table in selected if table not in ["All Tables", "None"]]

    session.reset_results()
    console.print(f"✅ Selected {len(session.selected_tables)} tables", style="bold green")


def _find_matches(session: SearchReplaceSession):
    """Count matching rows in each selected table, keeping a few rows of each for preview"""
    if not session.selected_tables:
        console.print("❌ No tables selected!", style="bold red")
        return

    console.print(f"\n🔍 Searching for '{session.search_term}' in {len(session.selected_tables)} tables...", style="bold blue")
    session.reset_results()

    try:
        with connect() as grep:
            database = grep.get_database_metadata(session.selected_tables)
            for table in database.tables.values():
                if not table.has_string_type_column():
                    console.print(f"  ⚪ No text columns found in {table.table_name}", style="dim")
                    continue

                count = 0
                preview = []
                for row in grep.searcher.search_table(table, session.search_term):
                    count += 1
                    if len(preview) < PREVIEW_LIMIT:
                        preview.append(row)

                if count:
                    session.match_counts[table.table_name] = count
                    session.preview_rows[table.table_name] = preview
                    console.print(f"  ✅ Found {count} matches in {table.table_name}", style="green")
                else:
                    console.print(f"  ⚪ No matches in {table.table_name}", style="dim")
    except (GrepDbError, SQLAlchemyError) as e:
        console.print(f"❌ Error during search: {e}", style="bold red")
        return

    console.print(
        f"\n📊 Search Complete: {session.total_matches} total matches found across {len(session.match_counts)} tables",
        style="bold green",
    )


def _preview_matches(session: SearchReplaceSession):
    """Preview the matches found in search results"""
    if not session.match_counts:
        console.print("❌ No search results available! Run 'Find Matches' first.", style="bold red")
        return

    console.print(f"\n📋 Preview of matches for '{session.search_term}'", style="bold blue")
    console.print(f"📊 Total: {session.total_matches} matches across {len(session.match_counts)} tables", style="bold green")
    console.print()

    for table_name, count in session.match_counts.items():
        console.print(f"🗂️  Table: {table_name} ({count} matches)", style="bold cyan")
        show_table_matches_preview(table_name, session.preview_rows.get(table_name, []), session.search_term, count)
        console.print()


def show_table_matches_preview(table_name: str, rows: List[RowSearchResult], search_term: str, total=None):
    """Show matching rows with the search term highlighted"""
    if not rows:
        return

    table = rows[0].table
    primary_key = table.get_primary_key_metadata()

    matching_columns = []
    for row in rows:
        for column_name in row.fields:
            if column_name not in matching_columns:
                matching_columns.append(column_name)

    console_width = console.size.width
    preview_table = Table(
        title=f"🔍 Matches in {table_name} - {len(matching_columns)} column(s) with matches (showing first {len(rows)} rows)",
        expand=True,
        show_lines=True,
        width=console_width,
    )

    key_label = primary_key.column_name if primary_key else "(no primary key)"
    preview_table.add_column(key_label, style="cyan", width=10, no_wrap=True)
    content_width = max(30, (console_width - 10 - (len(matching_columns) + 1) * 3) // max(1, len(matching_columns)))
    for column_name in matching_columns:
        preview_table.add_column(column_name, overflow="fold", width=content_width, max_width=content_width)

    for row in rows:
        cells = [str(row.primary_key_value) if row.has_primary_key() else "-"]
        for column_name in matching_columns:
            if row.has_column_result(column_name):
                value = as_text(row.get_column_result(column_name).value)
                cells.append(create_highlighted_snippet(value, search_term, max_length=80))
            else:
                cells.append("")
        preview_table.add_row(*cells)

    if total is not None and total > len(rows):
        preview_table.add_row(*[f"({total - len(rows)} more rows)"] + ["..." for _ in matching_columns])

    console.print(preview_table)


def create_highlighted_snippet(value: str, search_term: str, max_length: int = 80) -> Text:
    """Create a snippet showing context around the search term with highlighting"""
    value_lower = value.lower()
    search_lower = search_term.lower()

    search_pos = value_lower.find(search_lower)
    if search_pos == -1:
        return Text(value[:max_length] + ("..." if len(value) > max_length else ""))

    # Roughly a third of the snippet before the term, the rest after it
    search_end = search_pos + len(search_term)
    context_before = max_length // 3
    context_after = max_length - context_before - len(search_term)

    snippet_start = max(0, search_pos - context_before)
    snippet_end = min(len(value), search_end + context_after)

    if snippet_start == 0:
        snippet_end = min(len(value), max_length)
    elif snippet_end == len(value):
        snippet_start = max(0, len(value) - max_length)

    snippet = value[snippet_start:snippet_end]
    prefix = "..." if snippet_start > 0 else ""
    suffix = "..." if snippet_end < len(value) else ""

    highlighted = Text()
    if prefix:
        highlighted.append(prefix, style="dim")

    snippet_lower = snippet.lower()
    start = 0
    while True:
        pos = snippet_lower.find(search_lower, start)
        if pos == -1:
            highlighted.append(snippet[start:])
            break
        highlighted.append(snippet[start:pos])
        highlighted.append(snippet[pos:pos + len(search_term)], style="bold red")
        start = pos + len(search_term)

    if suffix:
        highlighted.append(suffix, style="dim")

    return highlighted


def _get_replace_term(session: SearchReplaceSession) -> bool:
    """Get the replacement text from user; an empty string deletes the search term"""
    try:
        replace_term = console.input("Enter the replacement text (leave empty to remove matches): ")
    except (KeyboardInterrupt, EOFError):
        console.print("\n❌ Operation cancelled by user", style="bold yellow")
        return False

    session.replace_term = replace_term
    console.print(f"✅ Replace text set to: '{replace_term}'", style="bold green")
    return True


def _execute_replace(session: SearchReplaceSession, dry_run: bool = True):
    """Run the replacement over the selected tables, or simulate it with dry_run"""
    if not session.match_counts:
        console.print("❌ No search results available!", style="bold red")
        return

    if session.replace_term is None:
        console.print("❌ No replacement text specified!", style="bold red")
        return

    console.print(f"\n📊 {'DRY RUN - ' if dry_run else ''}Search and Replace Summary:", style="bold blue")
    console.print(f"  Search Term: '{session.search_term}'", style="dim")
    console.print(f"  Replace With: '{session.replace_term}'", style="dim")

    summary_table = Table(title="Tables to Modify", expand=True, show_lines=True)
    summary_table.add_column("Table", style="cyan", width=40)
    summary_table.add_column("Matching Rows", style="yellow", justify="center", width=15)
    for table_name, count in session.match_counts.items():
        summary_table.add_row(table_name, str(count))
    console.print(summary_table)

    if not dry_run:
        console.print("\n⚠️  WARNING: This operation will modify your database!", style="bold red")
        questions = [
            inquirer.Confirm(
                "confirm",
                message="Are you absolutely sure you want to proceed?",
                default=False,
            )
        ]
        answers = inquirer.prompt(questions)
        if not answers or not answers["confirm"]:
            console.print("❌ Operation cancelled by user.", style="yellow")
            return

        session.create_journal_file()
        console.print(f"📁 Change journal created: {session.journal_file}", style="green")

    changes = []
    errors = []
    table_names = list(session.match_counts.keys())

    try:
        with connect() as grep, Progress() as progress:
            tasks = {
                name: progress.add_task(f"[green]{name}", total=session.match_counts[name])
                for name in table_names
            }

            def on_batch(table_result):
                if table_result.complete:
                    progress.update(tasks[table_result.table.table_name], completed=table_result.rows_replaced_count)

            results = grep.replace_database(
                session.search_term,
                session.replace_term,
                table_names=table_names,
                progress=on_batch,
                dry_run=dry_run,
            )
            for result in results:
                progress.advance(tasks[result.table.table_name])
                changes.extend(journal_entries(result))
                errors.extend(result.all_errors())
    except (GrepDbError, SQLAlchemyError) as e:
        console.print(f"❌ Error during {'dry run' if dry_run else 'replacement'}: {e}", style="bold red")
        if not dry_run:
            session.write_journal(changes, errors + [str(e)])
        return

    for error in errors:
        console.print(f"  ⚠️  {error}", style="yellow")

    if dry_run:
        console.print(f"\n✅ Dry run completed! {len(changes)} columns would be modified.", style="bold green")
    else:
        session.write_journal(changes, errors)
        console.print(f"\n✅ Search and replace completed! {len(changes)} changes made.", style="bold green")
        session.reset_results()
