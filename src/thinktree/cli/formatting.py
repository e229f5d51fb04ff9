"""Rich formatting helpers for the ThinkTree CLI.

Provides functions that format conversation data for terminal display.
Rich auto-detects TTY and degrades gracefully when piped (no ANSI codes).
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from rich.console import Console
from rich.markup import escape
from rich.tree import Tree

if TYPE_CHECKING:
    from thinktree.models.message import Message
    from thinktree.models.thread import Thread, ThreadTreeNode


def get_console() -> Console:
    """Create a Rich Console that auto-detects TTY for graceful pipe degradation."""
    return Console(stderr=False)


def format_error(message: str, console: Console) -> None:
    """Display an error message."""
    console.print(f"[red]Error:[/red] {message}", highlight=False)


def format_forest(
    forest: list[ThreadTreeNode],
    active_thread_id: str | None,
    console: Console,
) -> None:
    """Display the thread tree, marking the active thread."""
    if not forest:
        console.print("[dim]No threads.[/dim]")
        return

    def label(thread: Thread) -> str:
        marker = "[green]*[/green] " if thread.id == active_thread_id else "  "
        count = len(thread.messages)
        return (
            f"{marker}[bold]{escape(thread.title)}[/bold] "
            f"[yellow]{thread.id}[/yellow] [dim]({count} message{'s' if count != 1 else ''})[/dim]"
        )

    def add(parent: Tree, node: ThreadTreeNode) -> None:
        branch = parent.add(label(node.thread))
        for child in node.children:
            add(branch, child)

    for root in forest:
        tree = Tree(label(root.thread), guide_style="dim")
        for child in root.children:
            add(tree, child)
        console.print(tree)


def format_message(message: Message, console: Console, *, show_reasoning: bool = True) -> None:
    """Display one message with its id, role and (optionally) reasoning."""
    role_style = "cyan" if message.role == "user" else "magenta"
    tags = " [dim](welcome)[/dim]" if message.synthetic else ""
    console.print(
        f"[{role_style}]{message.role}[/{role_style}] [yellow]{message.id}[/yellow]{tags}"
    )
    if show_reasoning and message.reasoning:
        console.print(f"[dim italic]{escape(message.reasoning)}[/dim italic]")
    console.print(escape(message.content), highlight=False)


def format_thread(thread: Thread, console: Console, *, show_reasoning: bool = True) -> None:
    """Display a thread header and all of its messages."""
    console.print(f"[bold]{escape(thread.title)}[/bold]  [yellow]{thread.id}[/yellow]")
    if thread.parent_thread_id:
        console.print(
            f"  [dim]forked from {thread.parent_thread_id} at {thread.fork_message_id}[/dim]"
        )
    for message in thread.messages:
        console.print()
        format_message(message, console, show_reasoning=show_reasoning)


class StreamPrinter:
    """Print a streaming assistant message incrementally.

    Reasoning is printed dimmed as it grows; once answer text appears it is
    printed after a blank line.  Only text that extends what was already
    printed is written.
    """

    def __init__(self, console: Console, *, show_reasoning: bool = True) -> None:
        self._console = console
        self._show_reasoning = show_reasoning
        self._reasoning = ""
        self._content = ""

    def __call__(self, thread_id: str, message: Message) -> None:
        if message.role != "assistant":
            return
        reasoning = message.reasoning or ""
        if self._show_reasoning and not self._content and reasoning.startswith(self._reasoning):
            self._write(reasoning[len(self._reasoning):], style="dim italic")
            self._reasoning = reasoning
        if message.content.startswith(self._content):
            delta = message.content[len(self._content):]
            if delta and not self._content and self._reasoning:
                self._console.print("\n")
            self._write(delta)
            self._content = message.content

    def _write(self, text: str, style: str | None = None) -> None:
        if text:
            self._console.print(text, style=style, end="", highlight=False, markup=False)

    def finish(self) -> None:
        self._console.print()
