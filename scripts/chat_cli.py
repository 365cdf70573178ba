#!/usr/bin/env python3
"""Interactive chat CLI for testing the design agent service."""

import json
import sys

import httpx
from rich.console import Console
from rich.markdown import Markdown
from rich.panel import Panel
from rich.prompt import Prompt


class ChatCLI:
    """Interactive chat interface for the design agent service."""

    def __init__(self, base_url: str = "http://localhost:8000"):
        """Initialize chat CLI."""
        self.base_url = base_url
        self.session_id: str | None = None
        self.console = Console()
        self.client = httpx.Client(timeout=httpx.Timeout(10.0, read=None))

    def start(self) -> None:
        """Start the interactive chat session."""
        self.console.print(
            Panel.fit(
                "[bold magenta]Design Agent - Interactive Chat[/bold magenta]\n"
                "Describe the design you want; the agent works inside its sandbox.\n"
                "Press Ctrl-C while a reply streams to stop it.\n"
                "Commands: /help, /history, /clear, /quit",
                border_style="magenta",
            )
        )

        if not self._test_connection():
            self.console.print(f"[red]Cannot connect to the service at {self.base_url}.[/red]")
            return

        self.console.print("[green]Connected to design agent service[/green]\n")

        try:
            while True:
                user_input = Prompt.ask("\n[bold cyan]You[/bold cyan]")

                if user_input.lower() in ["/quit", "/exit", "quit", "exit"]:
                    break
                elif user_input.lower() == "/help":
                    self._show_help()
                    continue
                elif user_input.lower() == "/history":
                    self._show_history()
                    continue
                elif user_input.lower() == "/clear":
                    self.session_id = None
                    self.console.print("[yellow]Session cleared[/yellow]")
                    continue
                elif user_input.strip() == "":
                    continue

                self._send_message(user_input)

        except KeyboardInterrupt:
            pass
        finally:
            self.console.print("\n[yellow]Goodbye![/yellow]")
            self.client.close()

    def _test_connection(self) -> bool:
        """Test connection to the service."""
        try:
            response = self.client.get(f"{self.base_url}/health")
            return response.status_code == 200
        except httpx.HTTPError:
            return False

    def _send_message(self, message: str) -> None:
        """Send a message and render the streamed events as they arrive."""
        payload = {"message": message}
        if self.session_id:
            payload["session_id"] = self.session_id

        try:
            with self.client.stream("POST", f"{self.base_url}/chat", json=payload) as response:
                if response.status_code != 200:
                    response.read()
                    self.console.print(f"[red]API Error: {response.status_code} - {response.text}[/red]")
                    return

                self.session_id = response.headers.get("x-session-id", self.session_id)
                try:
                    for line in response.iter_lines():
                        if line.strip():
                            self._render_event(json.loads(line))
                except KeyboardInterrupt:
                    self._stop()
                    # Drain the remaining events so the stop confirmation is shown
                    for line in response.iter_lines():
                        if line.strip():
                            self._render_event(json.loads(line))
        except httpx.HTTPError as e:
            self.console.print(f"[red]Connection error: {e}[/red]")

    def _stop(self) -> None:
        """Ask the service to cancel the running query."""
        if not self.session_id:
            return
        try:
            self.client.post(f"{self.base_url}/chat/{self.session_id}/stop")
        except httpx.HTTPError as e:
            self.console.print(f"[red]Failed to stop: {e}[/red]")

    def _render_event(self, event: dict) -> None:
        """Display one UI event."""
        match event.get("command"):
            case "chatResponseChunk" if event.get("messageType") == "assistant":
                self.console.print(event.get("content", ""), end="", markup=False, highlight=False)
            case "chatResponseChunk" if event.get("messageType") == "tool-call":
                metadata = event.get("metadata", {})
                name, call_id = metadata.get("tool_name"), metadata.get("tool_id")
                self.console.print(f"\n[bold blue]> {name}[/bold blue] [dim]{call_id}[/dim]")
            case "chatToolResult":
                self._render_tool_result(event)
            case "chatStreamEnd":
                self.console.print()
            case "chatStopped":
                self.console.print("\n[yellow]Stopped[/yellow]")
            case "chatError":
                self.console.print(f"\n[red]Error: {event.get('error')}[/red]")
            case "chatErrorWithActions":
                actions = ", ".join(action["text"] for action in event.get("actions", []))
                self.console.print(f"\n[red]Error: {event.get('error')}[/red]\n[dim]Suggested: {actions}[/dim]")

    def _render_tool_result(self, event: dict) -> None:
        """Display a tool result, summarizing large payloads."""
        result = json.loads(event.get("content") or "{}")
        if event.get("isError"):
            body = f"[red]{result.get('errorKind', 'error')}: {result.get('error')}[/red]"
        else:
            body = result.get("summary") or result.get("file_path") or "ok"
        self.console.print(Panel(str(body), title="[green]Tool result[/green]", border_style="green", expand=False))

    def _show_history(self) -> None:
        """Show the session's conversation."""
        if not self.session_id:
            self.console.print("[yellow]No session yet[/yellow]")
            return

        response = self.client.get(f"{self.base_url}/chat/{self.session_id}/conversation")
        if response.status_code != 200:
            self.console.print(f"[red]API Error: {response.status_code} - {response.text}[/red]")
            return

        lines = []
        for index, turn in enumerate(response.json()["turns"]):
            content = turn["content"]
            if not isinstance(content, str):
                content = ", ".join(part.get("name") or part.get("text", "") for part in content)
            marker = " (error)" if turn.get("is_error") else ""
            lines.append(f"{index}. **{turn['role']}**{marker}: {content[:200]}")

        self.console.print(Panel(Markdown("\n".join(lines)), title="[cyan]History[/cyan]", border_style="cyan"))

    def _show_help(self) -> None:
        """Show help information."""
        help_text = """
[bold]Available Commands:[/bold]
• /help - Show this help message
• /history - Show the conversation so far
• /clear - Start a new session
• /quit or /exit - Exit the chat

[bold]Example Prompts:[/bold]
1. "Create a modern dark theme for a music app"
2. "Design a landing page using that theme"
3. "List the files you created"
        """

        self.console.print(Panel(help_text.strip(), title="[cyan]Help[/cyan]", border_style="cyan"))


def main():
    """Main entry point for the chat CLI."""
    base_url = sys.argv[1] if len(sys.argv) > 1 else "http://localhost:8000"

    chat = ChatCLI(base_url)
    chat.start()


if __name__ == "__main__":
    main()
