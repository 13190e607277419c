#!/usr/bin/env python3
"""Interactive chat CLI for the toolchat service."""

import os
import sys

import httpx
from rich.console import Console
from rich.markdown import Markdown
from rich.panel import Panel
from rich.prompt import Prompt
from rich.table import Table

MODES = {
    "exa": "/chat",
    "tavily": "/chat-tavily",
    "toggle": "/chat-toggle",
    "image": "/chat-image-search",
    "calendar": "/chat-calendar",
}


class ChatCLI:
    """Terminal front end that keeps the conversation history client-side."""

    def __init__(self, base_url: str = "http://localhost:8000"):
        self.base_url = base_url
        self.mode = "exa"
        self.web_search_enabled = False
        self.history: list[dict] = []
        self.console = Console()
        self.client = httpx.Client(timeout=120.0)
        self.headers: dict[str, str] = {}

        # Calendar identity normally comes from the web front end's session
        if os.getenv("TOOLCHAT_USER_EMAIL"):
            self.headers["X-User-Email"] = os.environ["TOOLCHAT_USER_EMAIL"]
        if os.getenv("GOOGLE_REFRESH_TOKEN"):
            self.headers["X-Google-Refresh-Token"] = os.environ["GOOGLE_REFRESH_TOKEN"]

    def start(self) -> None:
        """Start the interactive chat session."""
        self.console.print(
            Panel.fit(
                "[bold blue]Toolchat - Interactive Chat[/bold blue]\n"
                "Type your messages to chat with the assistant.\n"
                "Commands: /help, /mode <name>, /search on|off, /clear, /quit",
                border_style="blue",
            )
        )

        if not self._test_connection():
            self.console.print(f"[red]Cannot connect to the service at {self.base_url}.[/red]")
            return

        self.console.print(f"[green]Connected, mode: {self.mode}[/green]\n")

        try:
            while True:
                user_input = Prompt.ask(f"\n[bold cyan]You ({self.mode})[/bold cyan]")
                command = user_input.strip().lower()

                if command in ["/quit", "/exit", "quit", "exit"]:
                    break
                elif command == "/help":
                    self._show_help()
                    continue
                elif command == "/clear":
                    self.history = []
                    self.console.print("[yellow]Conversation cleared[/yellow]")
                    continue
                elif command.startswith("/mode"):
                    self._switch_mode(command.removeprefix("/mode").strip())
                    continue
                elif command.startswith("/search"):
                    self.web_search_enabled = command.endswith("on")
                    state = "enabled" if self.web_search_enabled else "disabled"
                    self.console.print(f"[yellow]Web search {state} for toggle mode[/yellow]")
                    continue
                elif command == "":
                    continue

                self.history.append({"role": "user", "content": user_input})
                reply = self._send_history()
                if reply:
                    self.history.append({"role": "assistant", "content": reply.get("content", "")})
                    self._display_reply(reply)
                else:
                    self.history.pop()

        except KeyboardInterrupt:
            pass
        finally:
            self.console.print("\n[yellow]Goodbye![/yellow]")
            self.client.close()

    def _test_connection(self) -> bool:
        try:
            response = self.client.get(f"{self.base_url}/health")
        except httpx.HTTPError:
            return False
        return response.status_code == 200

    def _switch_mode(self, mode: str) -> None:
        if mode not in MODES:
            self.console.print(f"[red]Unknown mode {mode!r}. Choose from: {', '.join(MODES)}[/red]")
            return
        self.mode = mode
        self.history = []
        self.console.print(f"[yellow]Switched to {mode} mode, conversation cleared[/yellow]")

    def _send_history(self) -> dict | None:
        """Send the whole conversation; return the assistant message."""
        payload = {"messages": self.history, "maxTokens": 1024, "webSearchEnabled": self.web_search_enabled}

        try:
            with self.console.status("[dim]Thinking...[/dim]"):
                response = self.client.post(f"{self.base_url}{MODES[self.mode]}", json=payload, headers=self.headers)
        except httpx.HTTPError as e:
            self.console.print(f"[red]Connection error: {e}[/red]")
            return None

        body = response.json()
        if response.status_code != 200 or not body.get("success"):
            self.console.print(f"[red]API Error: {response.status_code} - {body.get('error', response.text)}[/red]")
            return None
        return body["data"]

    def _display_reply(self, reply: dict) -> None:
        self.console.print(
            Panel(
                Markdown(reply.get("content") or "_No response_"),
                title="[bold green]Assistant[/bold green]",
                border_style="green",
                padding=(1, 2),
            )
        )

        attachments = reply.get("attachments") or {}
        if attachments.get("searchResults"):
            table = Table(title="Search results", show_lines=False)
            table.add_column("Title")
            table.add_column("URL", style="blue")
            for result in attachments["searchResults"]:
                table.add_row(result["title"], result["url"])
            self.console.print(table)

        for image in attachments.get("generatedImages", []):
            self.console.print(f"[magenta]Image:[/magenta] {image['url']}")

        if attachments.get("calendarEvents"):
            table = Table(title="Calendar events")
            table.add_column("Summary")
            table.add_column("Start")
            table.add_column("End")
            for event in attachments["calendarEvents"]:
                table.add_row(event["summary"], event["start"]["dateTime"], event["end"]["dateTime"])
            self.console.print(table)

    def _show_help(self) -> None:
        help_text = f"""
[bold]Available Commands:[/bold]
• /help - Show this help message
• /mode <name> - Switch tools: {", ".join(MODES)}
• /search on|off - Web search switch for toggle mode
• /clear - Start a new conversation
• /quit or /exit - Exit the chat

[bold]Calendar mode:[/bold]
Set TOOLCHAT_USER_EMAIL and GOOGLE_REFRESH_TOKEN before starting, or run the
server with CALENDAR_BACKEND=memory and any refresh token value.

[bold]Examples:[/bold]
1. "What happened in the news today?" (exa, tavily)
2. "Draw a lighthouse at dusk" (image)
3. "Schedule lunch with Sam tomorrow at 1pm for 1 hour" (calendar)
        """

        self.console.print(Panel(help_text.strip(), title="[cyan]Help[/cyan]", border_style="cyan"))


def main():
    """Main entry point for the chat CLI."""
    base_url = sys.argv[1] if len(sys.argv) > 1 else "http://localhost:8000"

    chat = ChatCLI(base_url)
    chat.start()


if __name__ == "__main__":
    main()
