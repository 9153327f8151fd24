from __future__ import annotations

import pathlib
from typing import List, Optional

from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.syntax import Syntax
from rich.table import Table

from multiquery.environment_config import EnvironmentConfig
from multiquery.query_file import PathResolution
from multiquery.schemas import ConnectionTestResult
from multiquery.validation import ValidationOutcome


class ConsolePresenter:
    """
    Diagnostic output for the multiquery CLI.

    Writes to stderr by default so that rendered results on stdout (CSV in
    particular) stay machine-readable.
    """
    def __init__(self, console: Optional[Console] = None, verbose: bool = False):
        self.console = console or Console(stderr=True, highlight=False)
        self.verbose = verbose

    # -------------------------------------------------------------------------
    # Generic Helpers
    # -------------------------------------------------------------------------
    def print_error(self, message: str) -> None:
        self.console.print(f"[bold red]Error:[/bold red] {escape(message)}")

    def print_warning(self, message: str) -> None:
        self.console.print(f"[yellow]Warning: {escape(message)}[/yellow]")

    def print_success(self, message: str) -> None:
        self.console.print(f"[green]✓ {escape(message)}[/green]")

    def print_step(self, message: str) -> None:
        self.console.print(f"[bold blue]{escape(message)}[/bold blue]")

    def print_header(self, message: str) -> None:
        self.console.print(f"\n[bold magenta]=== {escape(message)} ===[/bold magenta]")

    # -------------------------------------------------------------------------
    # Setup phases
    # -------------------------------------------------------------------------
    def print_arguments(self, query_file: str, environments_file: str, csv_output: bool) -> None:
        self.print_header("MultiQuery - Parsed Arguments")
        self.console.print(f"Query File: {escape(query_file)}")
        self.console.print(f"Environments File: {escape(environments_file)}")
        self.console.print(f"CSV Output: {csv_output}")
        self.console.print(f"Verbose Mode: {self.verbose}")

    def print_path_resolution(self, resolution: PathResolution, label: str) -> None:
        if not self.verbose:
            return
        self.print_header(f"Path Resolution: {label}")
        self.console.print(f"Original path: {escape(resolution.original)}")
        self.console.print(f"Path type: {'Relative' if resolution.is_relative else 'Absolute'}")
        if len(resolution.searched) > 1:
            self.console.print("Search locations:")
            for i, candidate in enumerate(resolution.searched, start=1):
                mark = "[green]✓[/green]" if candidate.is_file() else "[red]✗[/red]"
                self.console.print(f"  {i}. {escape(str(candidate))} {mark}")
        self.console.print(f"Resolved path: {escape(str(resolution.resolved))}")

    def print_environments(self, config: EnvironmentConfig) -> None:
        self.print_header(f"Loaded {config.count} Database Environment(s)")
        for i, env in enumerate(config.environments, start=1):
            self.console.print(f"{i:02d}. {escape(env.id)} [dim]({env.engine})[/dim]")
            if self.verbose:
                self.console.print(f"    Connection: {escape(env.display_url())}")

    def print_connection_results(self, results: List[ConnectionTestResult]) -> None:
        successful = sum(1 for r in results if r.success)
        self.print_header("Database Connection Test Results")
        self.console.print(f"Total: {len(results)}, Successful: {successful}, Failed: {len(results) - successful}")

        table = Table(show_header=True, header_style="bold cyan")
        table.add_column("Endpoint", style="cyan", no_wrap=True)
        table.add_column("Status")
        table.add_column("Duration", justify="right")
        table.add_column("Details", overflow="fold")
        if self.verbose:
            table.add_column("Server Version")
            table.add_column("Error Code")

        for r in sorted(results, key=lambda r: r.endpoint_id):
            status = "[green]OK[/green]" if r.success else "[red]Failed[/red]"
            row = [escape(r.endpoint_id), status, f"{r.duration_ms:.0f}ms", escape(r.message)]
            if self.verbose:
                row.extend([r.server_version or "", r.error_code or ""])
            table.add_row(*row)

        self.console.print(table)

        failed = len(results) - successful
        if failed:
            self.print_warning(f"{failed} database connection(s) failed.")
            if not self.verbose:
                self.console.print("[dim]Use --verbose to see detailed error information.[/dim]")
            self.console.print("Proceeding with available connections...")

    def print_query(self, query: str, path: pathlib.Path) -> None:
        lines = query.split("\n")
        non_empty = sum(1 for line in lines if line.strip())
        self.print_header(f"SQL Query File: {path.name}")
        self.console.print(f"Total Lines: {len(lines)}, Non-empty Lines: {non_empty}")
        if self.verbose:
            self.console.print(Panel(Syntax(query, "sql", line_numbers=True), title="Query Content", expand=False))
            return

        preview = [line.strip() for line in lines[:3] if line.strip()]
        if preview:
            self.console.print("Preview:")
            for line in preview:
                self.console.print(f"  {escape(line)}")
            if len(lines) > 3:
                self.console.print("  [dim]... (use --verbose to see full content)[/dim]")

    def print_validation(self, validation: ValidationOutcome) -> None:
        self.print_header("Query Validation Results")
        self.console.print(f"Valid: {'[green]✓ Yes[/green]' if validation.is_valid else '[red]✗ No[/red]'}")
        self.console.print(f"Statements Found: {validation.statement_count}")
        if not validation.is_valid:
            self.console.print(f"Error: {escape(validation.error_message)}")

        if self.verbose and validation.statements:
            self.console.print("\nStatement Details:")
            for stmt in validation.statements:
                mark = "[green]✓[/green]" if stmt.is_valid else "[red]✗[/red]"
                self.console.print(f"  {mark} Statement {stmt.index}: {stmt.statement_type.value}")
                if not stmt.is_valid:
                    self.console.print(f"    Error: {escape(stmt.error_message)}")
                preview = " ".join(stmt.raw_text.split())
                if len(preview) > 50:
                    preview = preview[:50] + "..."
                self.console.print(f"    Preview: {escape(preview)}")

    def print_execution_header(self, query_file: pathlib.Path, endpoint_count: int) -> None:
        self.print_header(f"Query Results: {query_file.name}")
        self.console.print(f"Executing against {endpoint_count} database(s)...")
