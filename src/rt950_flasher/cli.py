"""
RT-950 Firmware Flasher CLI

Command-line interface for flashing RT-950 firmware over the bootloader.
"""

import sys
import signal
import logging
import threading
from typing import Optional

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.logging import RichHandler
from rich.progress import Progress, BarColumn, TextColumn

from rt950_flasher import __version__
from rt950_flasher.config import DEFAULT_CONFIG, ConfigError
from rt950_flasher.core.results import OperationResult
from rt950_flasher.core.actions import (
    flash_firmware as core_flash_firmware,
    inspect_firmware_file as core_inspect_firmware,
    list_ports as core_list_ports,
)
from rt950_flasher.core.messages import (
    WarningItem,
    MessageLevel,
    result_to_warnings,
)

# Setup logging; status lines reach the user through the flash callbacks,
# so the handler only shows warnings unless --verbose is given
log_handler = RichHandler(rich_tracebacks=True, level=logging.WARNING)
logging.basicConfig(
    level=logging.WARNING,
    format="%(message)s",
    handlers=[log_handler],
)
logger = logging.getLogger("rt950_flasher")

# Setup Rich console
console = Console()

app = typer.Typer(help="📻 Radtel RT-950 Firmware Flasher")

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_CANCELLED = 130

FLASHING_MODE_INSTRUCTIONS = (
    "Flashing mode:\n"
    "Turn off the power, while holding down side keys 3 and 4, turn on the power, "
    "enter the Update interface, then continue here and wait for completion."
)

UPGRADE_MODE_INSTRUCTIONS = (
    "Upgrade mode:\n"
    "Turn on the power, connect the programming cable, then continue here "
    "and wait for completion."
)


def print_header(text: str) -> None:
    """Print fancy header."""
    console.print(Panel(text, expand=False, style="bold blue"))


def print_success(text: str) -> None:
    console.print(f"✓ {text}", style="green")


def print_warning(text: str) -> None:
    console.print(f"⚠️  {text}", style="yellow")


def print_error(text: str) -> None:
    console.print(f"❌ {text}", style="red")


def print_structured_warning(warning: WarningItem, verbose: bool = False) -> None:
    """Print a structured warning with optional remediation."""
    if warning.level == MessageLevel.ERROR:
        style = "red"
        icon = "❌"
    elif warning.level == MessageLevel.WARN:
        style = "yellow"
        icon = "⚠️"
    else:
        style = "blue"
        icon = "ℹ️"

    console.print(f"{icon} [{warning.code.value}] {warning.title}", style=style)
    if verbose and warning.detail:
        console.print(f"   {warning.detail}", style="dim")
    if warning.remediation and (verbose or warning.level == MessageLevel.ERROR):
        console.print(f"   → {warning.remediation}", style="cyan")


def print_warnings_from_result(result: OperationResult, verbose: bool = False) -> None:
    """Print all warnings from an OperationResult using structured format."""
    for warning in result_to_warnings(result):
        print_structured_warning(warning, verbose=verbose)


def exit_code_for(result: OperationResult) -> int:
    """Map a flash result to the process exit status."""
    if result.ok:
        return EXIT_OK
    if result.cancelled:
        return EXIT_CANCELLED
    return EXIT_FAILED


@app.command()
def ports() -> None:
    """List available serial ports."""
    print_header("Available Serial Ports")

    result = core_list_ports()
    if not result.ok:
        print_warnings_from_result(result)
        sys.exit(EXIT_FAILED)

    port_list = result.metadata["ports"]
    if not port_list:
        print_warning("No serial ports found")
        return

    table = Table(title="Serial Ports")
    table.add_column("#", style="dim")
    table.add_column("Port", style="cyan")
    for index, name in enumerate(port_list, 1):
        table.add_row(str(index), name)
    console.print(table)


@app.command()
def inspect(
    firmware: str = typer.Argument(..., help="Path to firmware image"),
) -> None:
    """Summarise a firmware image without touching a radio."""
    print_header("Firmware Inspection")

    result = core_inspect_firmware(firmware)
    if not result.ok:
        print_warnings_from_result(result, verbose=True)
        sys.exit(EXIT_FAILED)

    meta = result.metadata
    table = Table(title=meta["path"])
    table.add_column("Property", style="cyan")
    table.add_column("Value", style="green")
    table.add_row("Size", f"{result.bytes_len:,} bytes")
    table.add_row("Model", result.model or "(blank)")
    table.add_row("Chunks", f"{meta['chunks']} x {DEFAULT_CONFIG.chunk_size} bytes")
    table.add_row("Packages field", str(meta["packages_field"]))
    table.add_row("Final chunk padding", f"{meta['padding']} bytes")
    table.add_row("SHA256", result.hashes["sha256"])
    console.print(table)

    print_warnings_from_result(result)


@app.command()
def flash(
    port: Optional[str] = typer.Option(
        None, "--port", "-p", help="Serial port (e.g., /dev/ttyUSB0, COM3)"
    ),
    firmware: str = typer.Option(..., "--firmware", "-f", help="Firmware image to flash"),
    key_combo: bool = typer.Option(
        False,
        "--key-combo/--upgrade",
        help="Radio was powered on holding side keys 3+4 (flashing mode) "
        "or is running normally (upgrade mode)",
    ),
    raw: bool = typer.Option(False, "--raw", help="Use the termios raw transport (POSIX)"),
    simulate: bool = typer.Option(
        False, "--simulate", help="Run against an in-memory radio instead of a port"
    ),
    command_timeout: Optional[float] = typer.Option(
        None, "--command-timeout", help="Seconds to wait for each command reply"
    ),
    retries: Optional[int] = typer.Option(
        None, "--retries", help="Consecutive unanswered attempts before giving up"
    ),
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip the readiness prompt"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show protocol debug logs"),
) -> None:
    """Flash a firmware image to the radio."""
    if verbose:
        logger.setLevel(logging.DEBUG)
        log_handler.setLevel(logging.DEBUG)

    print_header(f"RT-950 Firmware Flash (v{__version__})")

    if port is None and not simulate:
        raise typer.BadParameter("--port is required unless --simulate is given")

    try:
        config = DEFAULT_CONFIG.with_overrides(
            command_timeout=command_timeout, retry_budget=retries
        )
    except ConfigError as e:
        raise typer.BadParameter(str(e))

    console.print(FLASHING_MODE_INSTRUCTIONS if key_combo else UPGRADE_MODE_INSTRUCTIONS)
    console.print(f"\nPort: {'simulator' if simulate else port}")
    console.print(f"Firmware: {firmware}\n")

    if not yes and not typer.confirm("Radio ready?", default=True):
        raise typer.Abort()

    cancel = threading.Event()

    def _on_sigint(signum, frame):
        if cancel.is_set():
            raise KeyboardInterrupt
        console.print("\n[yellow]Cancelling after the current step...[/yellow]")
        cancel.set()

    previous_handler = signal.signal(signal.SIGINT, _on_sigint)
    try:
        with Progress(
            TextColumn("[{task.description}]"),
            BarColumn(),
            TextColumn("[{task.percentage:.0f}%]"),
            console=console,
        ) as progress:
            task = progress.add_task("Flashing", total=100)

            def on_message(line: str) -> None:
                text = line.strip()
                if text:
                    progress.console.print(text, markup=False)

            def on_progress(percent: float) -> None:
                progress.update(task, completed=percent)

            result = core_flash_firmware(
                port or "",
                firmware,
                key_combo=key_combo,
                raw=raw,
                simulate=simulate,
                config=config,
                on_message=on_message,
                on_progress=on_progress,
                cancel=cancel,
            )
    finally:
        signal.signal(signal.SIGINT, previous_handler)

    if verbose:
        console.print(result.to_summary(), style="dim")

    print_warnings_from_result(result, verbose=verbose)
    if result.ok:
        resends = result.metadata.get("resends", 0)
        print_success(f"Firmware flashed ({result.bytes_len:,} bytes, {resends} resends)")

    code = exit_code_for(result)
    if code != EXIT_OK:
        sys.exit(code)


def main() -> None:
    """Main entry point."""
    try:
        app()
    except KeyboardInterrupt:
        console.print("\n[yellow]Operation cancelled by user[/yellow]")
        sys.exit(EXIT_CANCELLED)


if __name__ == "__main__":
    main()
