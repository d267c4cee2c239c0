# thinktank_client/app.py
# Description: Console front-end for the ThinkTank conversation store.
#
# Imports
import asyncio
from typing import Optional
#
# 3rd-Party Libraries
from loguru import logger
from rich.console import Console
from rich.markdown import Markdown
from rich.prompt import Prompt
from rich.table import Table
#
# Local Imports
from thinktank_client import config
from thinktank_client.Logging_Config import configure_application_logging
from thinktank_client.Chat.chat_models import Message
from thinktank_client.Chat.conversation_store import ConversationStore
from thinktank_client.thinktank_api import (
    ConversationService, InMemoryConversationService, StaticTokenProvider, ThinkTankAPIClient, ThinkTankAPIError
)
#
########################################################################################################################
#
# Functions:

HELP_TEXT = """Commands:
  /new [model]       start a new conversation
  /list              show conversations grouped by date
  /select <n>        select conversation number n from /list
  /rename <title>    rename the selected conversation
  /delete            delete the selected conversation
  /copy              duplicate the selected conversation
  /model [id]        show the models, or switch the selected conversation's model
  /default <id>      save the model used for new conversations
  /search <text>     list conversations matching text
  /reload            reload conversations from the server
  /retry             retry the last failed reply
  /quit              exit
Anything else is sent to the selected conversation."""


def build_service() -> ConversationService:
    """HTTP client when an API base URL is configured, otherwise the offline backend."""
    base_url = config.get_api_base_url()
    if not base_url:
        logger.info("No API base URL configured; using the in-memory backend")
        return InMemoryConversationService()
    return ThinkTankAPIClient(
        base_url=base_url,
        token_provider=StaticTokenProvider(config.get_setting("auth", "id_token", "")),
        streaming_url=config.get_streaming_url(),
        timeout=config.get_float_setting("api", "request_timeout", 30.0),
        streaming_timeout=config.get_float_setting("api", "streaming_timeout", 120.0),
    )


class ThinkTankConsole:
    def __init__(self, store: ConversationStore, console: Optional[Console] = None):
        self.store = store
        self.console = console or Console()
        self._listed = []

    def print_conversations(self, search_text: str = "") -> None:
        self._listed = []
        groups = self.store.conversations_grouped_by_date(search_text)
        if not groups:
            self.console.print("[dim]No conversations.[/dim]")
            return
        table = Table(show_header=True, header_style="bold")
        table.add_column("#", justify="right")
        table.add_column("Title")
        table.add_column("Model")
        table.add_column("Group")
        for group, conversations in groups:
            for conversation in conversations:
                self._listed.append(conversation.id)
                marker = "*" if conversation.id == self.store.selected_conversation_id else ""
                table.add_row(f"{marker}{len(self._listed)}", conversation.title, conversation.model_id, group.value)
        self.console.print(table)

    def print_message(self, message: Message) -> None:
        if message.is_error:
            self.console.print(f"[bold red]{message.content}[/bold red] [dim](/retry to try again)[/dim]")
        else:
            self.console.print(Markdown(message.content))

    async def print_models(self) -> None:
        table = Table(show_header=True, header_style="bold")
        table.add_column("Model id")
        table.add_column("Name")
        table.add_column("Provider")
        for model in await self.store.fetch_available_models():
            table.add_row(model.model_id, model.display_name, model.provider)
        self.console.print(table)

    async def send(self, text: str) -> None:
        conversation = self.store.selected_conversation or self.store.create_conversation()
        reply = await self.store.complete_turn(conversation.id, Message.user(text))
        self.print_message(reply)

    async def retry(self) -> None:
        conversation = self.store.selected_conversation
        failed = next((m for m in reversed(conversation.messages) if m.is_error), None) if conversation else None
        if failed is None:
            self.console.print("[dim]Nothing to retry.[/dim]")
            return
        reply = await self.store.retry_message(conversation.id, failed.id)
        if reply is not None:
            self.print_message(reply)

    async def handle_command(self, line: str) -> bool:
        command, _, argument = line.partition(" ")
        argument = argument.strip()
        selected = self.store.selected_conversation
        if command == "/quit":
            return False
        if command == "/help":
            self.console.print(HELP_TEXT)
        elif command == "/new":
            conversation = self.store.create_conversation(model_id=argument or None)
            self.console.print(f"Started '{conversation.title}' with {conversation.model_id}")
        elif command in ("/list", "/search"):
            self.print_conversations(argument if command == "/search" else "")
        elif command == "/select":
            if not argument.isdigit() or not 0 < int(argument) <= len(self._listed):
                self.console.print("[yellow]Use a number from /list.[/yellow]")
            else:
                self.store.select_conversation(self._listed[int(argument) - 1])
                await self.store.wait_for_background_tasks()
                for message in self.store.selected_conversation.messages:
                    prefix = "[bold cyan]you[/bold cyan]" if message.role.value == "user" else "[bold green]ai[/bold green]"
                    self.console.print(prefix)
                    self.print_message(message)
        elif command == "/rename" and selected:
            self.store.rename_conversation(selected, argument)
        elif command == "/delete" and selected:
            self.store.delete_conversation(selected)
        elif command == "/copy" and selected:
            self.store.duplicate_conversation(selected)
        elif command == "/model":
            if argument and selected:
                self.store.update_conversation_model(selected.id, argument)
            else:
                await self.print_models()
        elif command == "/default" and argument:
            config.set_default_model_id(argument)
            self.store.default_model_id = argument
        elif command == "/reload":
            await self.reload()
        elif command == "/retry":
            await self.retry()
        else:
            self.console.print("[yellow]Unknown command or no conversation selected. Try /help.[/yellow]")
        return True

    async def reload(self) -> None:
        try:
            await self.store.load_conversations_from_cloud()
        except ThinkTankAPIError as e:
            self.console.print(f"[bold red]Sync failed:[/bold red] {e}")
            return
        self.print_conversations()

    async def run(self) -> None:
        self.console.print("[bold]ThinkTank[/bold] - type /help for commands")
        await self.reload()
        while True:
            line = (await asyncio.to_thread(Prompt.ask, "[bold cyan]>[/bold cyan]")).strip()
            if not line:
                continue
            if line.startswith("/"):
                if not await self.handle_command(line):
                    break
            else:
                await self.send(line)


async def run_console() -> None:
    store = ConversationStore(
        build_service(),
        default_model_id=config.get_default_model_id(),
        default_title=config.get_default_title(),
    )
    try:
        await ThinkTankConsole(store).run()
    finally:
        await store.aclose()


def main() -> None:
    config.load_settings()
    configure_application_logging()
    try:
        asyncio.run(run_console())
    except (KeyboardInterrupt, EOFError):
        logger.info("ThinkTank console closed")

#
# End of app.py
########################################################################################################################
