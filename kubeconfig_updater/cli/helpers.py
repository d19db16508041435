"""CLI helper utilities for kubeconfig updater."""

from rich_toolkit import RichToolkit, RichToolkitTheme
from rich_toolkit.styles import TaggedStyle


def get_rich_toolkit() -> RichToolkit:
    theme = RichToolkitTheme(
        style=TaggedStyle(tag_width=11),
        theme={
            # Core tags
            "tag.title": "white on #2453ff",
            "tag": "white on #1a3dbf",
            "placeholder": "grey85",
            "text": "white",
            "result": "grey85",
            # Status tags
            "error": "bold red",
            "success": "bold green",
            "warning": "bold yellow",
            "info": "blue",
            # CLI specific tags
            "version": "cyan",
            "dry-run": "magenta",
            "config": "cyan",
            "backup": "yellow",
        },
    )

    return RichToolkit(theme=theme)


def bold(text: str) -> str:
    return f"[bold]{text}[/bold]"


def dim(text: str) -> str:
    return f"[dim]{text}[/dim]"


def warning(text: str) -> str:
    return f"[yellow]{text}[/yellow]"
