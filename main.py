import inquirer
from rich.console import Console

from grepdb.db_utils import check_db_connection_with_friendly_error, test_db_connection
from grepdb.dump_menu import inspect_dump_menu
from grepdb.search_replace import search_and_replace_menu, search_menu

console = Console()


def main():
    console.print("🔍 grepdb - MySQL Search & Replace", style="bold blue")
    console.print("=" * 50, style="blue")

    console.print("\n📡 Checking database connection...", style="cyan")
    db_connected = check_db_connection_with_friendly_error()

    if not db_connected:
        console.print("\n⚠️  Database features won't work until the connection is established.", style="yellow")
        console.print("   SQL dumps can still be inspected offline.", style="yellow")

    console.print("\n" + "=" * 50, style="blue")

    while True:
        questions = [
            inquirer.List(
                "option",
                message="Select an option",
                choices=["1. Test DB Connection", "2. Search", "3. Search & Replace", "4. Inspect SQL Dump", "Exit"],
            )
        ]
        answers = inquirer.prompt(questions)

        # Handle case where user cancels (Ctrl+C)
        if answers is None:
            console.print("\n👋 Exiting application. Goodbye!", style="bold green")
            break

        if answers["option"] == "1. Test DB Connection":
            test_db_connection()
        elif answers["option"] == "2. Search":
            search_menu()
        elif answers["option"] == "3. Search & Replace":
            search_and_replace_menu()
        elif answers["option"] == "4. Inspect SQL Dump":
            inspect_dump_menu()
        elif answers["option"] == "Exit":
            console.print("👋 Exiting application. Goodbye!", style="bold green")
            break


if __name__ == "__main__":
    main()
