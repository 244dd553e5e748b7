"""Console front end: ask questions about an Analysis Services model from a terminal."""
from __future__ import annotations

import sys
from typing import Optional

from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.prompt import Prompt
from rich.table import Table

from aaschat.config import settings
from aaschat.services.chat_orchestrator import ChatOrchestrator
from aaschat.services.dax_runner import ResultTable
from aaschat.services.errors import ChatPipelineError
from aaschat.utils.dataframe_utils import save_result

console = Console()


def log_line(message: str) -> None:
    console.print(f"[grey50]Log: {escape(message)}[/]")


def render_result(table: ResultTable) -> Table:
    rendered = Table()
    for column in table.columns:
        rendered.add_column(escape(column))
    for row in table.rows:
        rendered.add_row(*[escape("" if value is None else str(value)) for value in row])
    return rendered


def handle_command(command: str, orchestrator: ChatOrchestrator, last: Optional[ResultTable]) -> None:
    name, _, arg = command.partition(" ")
    if name == ":schema":
        schema = orchestrator.schema
        console.print(escape(schema.to_prompt_text()) if schema else "[red]No schema loaded[/]")
    elif name == ":save":
        if last is None:
            console.print("[red]Nothing to save yet.[/]")
        elif not arg.strip():
            console.print("[red]Usage: :save <file.csv>[/]")
        else:
            try:
                path = save_result(last, arg.strip())
            except (OSError, ValueError) as exc:
                console.print(f"[red]Error: Cannot save result: {escape(str(exc))}[/]")
                return
            console.print(f"[green]Saved {last.row_count} rows to {escape(str(path))}[/]")
    else:
        console.print(f"[red]Unknown command {escape(name)}[/]")


def main() -> int:
    missing = settings.missing()
    if missing:
        console.print(f"[red]Error: Missing configuration: {', '.join(missing)}[/]")
        return 1

    console.print(Panel.fit("Chat With AAS", style="bold blue"))
    orchestrator = ChatOrchestrator.from_settings(settings, on_progress=log_line)

    with console.status("Authenticating and fetching schema..."):
        try:
            orchestrator.initialize()
        except ChatPipelineError as exc:
            console.print(f"[red]Connection Error: {escape(str(exc))}[/]")
            return 1

    console.print("[green]Ready! Ask questions about your data (type 'exit' to quit).[/]")

    last: Optional[ResultTable] = None
    try:
        while True:
            user_input = Prompt.ask("[bold yellow]You[/]").strip()
            if user_input.lower() == "exit":
                break
            if not user_input:
                continue
            if user_input.startswith(":"):
                handle_command(user_input, orchestrator, last)
                continue

            with console.status("Thinking..."):
                turn = orchestrator.ask(user_input)
            if turn.ok:
                last = turn.result
                console.print(render_result(turn.result))
            else:
                console.print(f"[red]Error: {escape(turn.error or '')}[/]")
    except (KeyboardInterrupt, EOFError):
        console.print()
    finally:
        orchestrator.close()
    return 0


if __name__ == "__main__":
    sys.exit(main())
