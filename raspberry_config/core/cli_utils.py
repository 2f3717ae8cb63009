"""
CLI utilities for Raspberry Config.

Provides:
- Formatted printing (headers, sections, status messages) via rich
- User input handling that falls back to defaults when non-interactive
- Summary tables and reboot countdown
"""

from typing import Callable, List, Optional, Sequence, Tuple

from rich import box
from rich.console import Console
from rich.panel import Panel
from rich.prompt import Confirm, IntPrompt, Prompt
from rich.table import Table

console = Console(highlight=False)


# =============================================================================
# Formatted Printing
# =============================================================================


def print_header(text: str, subtitle: str = ""):
    """Print a formatted header panel.

    Args:
        text: Header text
        subtitle: Optional second line
    """
    body = f"[bold cyan]{text}[/bold cyan]"
    if subtitle:
        body += f"\n[dim]{subtitle}[/dim]"
    console.print()
    console.print(Panel(body, box=box.DOUBLE, border_style="blue", expand=False, padding=(0, 4)))


def print_section(text: str):
    console.print(f"\n[bold blue]═══ {text} ═══[/bold blue]")


def print_success(text: str):
    console.print(f"[green]✓[/green] {text}")


def print_warning(text: str):
    console.print(f"[yellow]⚠[/yellow] {text}")


def print_error(text: str):
    console.print(f"[red]✗[/red] {text}")


def print_info(text: str):
    console.print(f"[cyan]ℹ[/cyan] {text}")


def print_step(current: int, total: int, text: str):
    """Print a step progress indicator.

    Args:
        current: Current step number (1-indexed)
        total: Total number of steps
        text: Step description
    """
    console.print(f"[cyan][[/cyan][bold]{current}/{total}[/bold][cyan]][/cyan] {text}")


def print_dim(text: str):
    console.print(f"[dim]{text}[/dim]")


def print_dry_run(text: str):
    console.print(f"[magenta]\\[DRY RUN][/magenta] Would {text}")


def print_list(items: Sequence[str], numbered: bool = False, indent: int = 2):
    """Print a formatted list.

    Args:
        items: List items to print
        numbered: Whether to use numbers instead of bullets
        indent: Number of spaces to indent
    """
    prefix = " " * indent
    for i, item in enumerate(items, 1):
        marker = f"{i}." if numbered else "•"
        console.print(f"{prefix}{marker} {item}")


def print_summary(title: str, rows: Sequence[Tuple[str, str]]):
    """Print a two-column key/value table."""
    table = Table(title=title, box=box.ROUNDED, border_style="green", show_header=False)
    table.add_column("Setting", style="cyan")
    table.add_column("Value")
    for key, value in rows:
        table.add_row(key, str(value))
    console.print(table)


def print_checks(title: str, checks: Sequence[Tuple[str, bool]]):
    """Print pass/fail lines for a verification list."""
    print_section(title)
    for name, passed in checks:
        if passed:
            print_success(name)
        else:
            print_error(name)


# =============================================================================
# User Input
# =============================================================================


def get_input(
    prompt: str,
    default: str = "",
    password: bool = False,
    validator: Optional[Callable[[str], bool]] = None,
    error_message: str = "Invalid input",
    interactive: bool = True,
) -> str:
    """Get user input with optional default value and validation.

    Args:
        prompt: Input prompt text
        default: Default value if user presses Enter
        password: Whether to mask input
        validator: Optional validation function
        error_message: Message to show on validation failure
        interactive: When False the default is returned without asking

    Returns:
        The entered (or default) value
    """
    if not interactive:
        return default

    while True:
        value = Prompt.ask(
            f"[yellow]{prompt}[/yellow]",
            default=default or None,
            password=password,
            show_default=not password,
        )
        value = (value or "").strip()
        if validator and not validator(value):
            print_error(error_message)
            continue
        return value


def get_yes_no(prompt: str, default: bool = False, interactive: bool = True) -> bool:
    """Ask a yes/no question. Non-interactive answers are the default."""
    if not interactive:
        return default
    return Confirm.ask(f"[yellow]{prompt}[/yellow]", default=default)


def get_choice(prompt: str, choices: List[str], default: int = 1, interactive: bool = True) -> int:
    """Pick one of ``choices`` from a numbered list.

    Args:
        prompt: Prompt text
        choices: List of choice strings
        default: Default choice (1-indexed)
        interactive: When False the default is returned without asking

    Returns:
        Selected choice index (0-indexed)
    """
    if not interactive:
        return default - 1

    console.print(f"\n{prompt}")
    for i, choice in enumerate(choices, 1):
        suffix = " [dim](default)[/dim]" if i == default else ""
        console.print(f"  {i}. {choice}{suffix}")

    while True:
        number = IntPrompt.ask(f"[yellow]Select (1-{len(choices)})[/yellow]", default=default)
        if 1 <= number <= len(choices):
            return number - 1
        print_error(f"Please enter a number between 1 and {len(choices)}")


def countdown_message(remaining: int):
    console.print(f"[yellow]Rebooting in {remaining} seconds... (Ctrl+C to cancel)[/yellow]")
