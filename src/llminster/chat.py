# llminster: Interactive session REPL over the conversation engine. Every non-command line becomes a user turn; the reply, or the failure reason, is printed.

from typing import Callable, Optional

from .context import Context
from .conversation import ConversationOrchestrator
from .errors import AliasResolutionError, UnsupportedProviderError
from .results import Empty, Failure, Success
from .router import ProviderRouter


class ChatRepl:
    def __init__(
        self,
        orchestrator: ConversationOrchestrator,
        router: ProviderRouter,
        session_id: str,
        alias: str,
        temperature: float,
        ctx: Context,
    ) -> None:
        self.orchestrator = orchestrator
        self.router = router
        self.session_id = session_id
        self.alias = alias
        self.temperature = temperature
        self.ctx = ctx

    def cmd_help(self) -> None:
        self.ctx.send_to_user(
            "Commands:\n"
            "  :history        show the session transcript\n"
            "  :model <alias>  switch model for the next messages\n"
            "  :quit           leave the session\n"
            "Anything else is sent to the model."
        )

    def cmd_history(self) -> None:
        window = self.orchestrator.reconstruct_window(self.session_id)
        if isinstance(window, Failure):
            self.ctx.error_message(window.reason)
        elif isinstance(window, Empty):
            self.ctx.send_to_user("(no turns yet)")
        else:
            self.ctx.send_to_user(window.value)

    def cmd_model(self, alias: str) -> None:
        try:
            provider, model = self.router.resolve(alias)
        except AliasResolutionError as e:
            self.ctx.error_message(str(e))
            return
        self.alias = alias
        self.ctx.send_to_user(f"Using {provider}/{model}.")

    def handle_user_input(self, text: str) -> bool:
        """Handle one line; returns False when the user asked to quit."""
        if text.startswith(":"):
            parts = text.strip().split()
            cmd = parts[0]
            if cmd == ":help":
                self.cmd_help()
            elif cmd == ":history":
                self.cmd_history()
            elif cmd == ":model":
                if len(parts) < 2:
                    self.ctx.error_message("Usage: :model <alias>")
                else:
                    self.cmd_model(parts[1])
            elif cmd == ":quit":
                return False
            else:
                self.ctx.error_message(f"Unknown command: {cmd}. Type :help for help.")
            return True

        try:
            client = self.router.get_client(self.alias)
        except (AliasResolutionError, UnsupportedProviderError) as e:
            self.ctx.error_message(str(e))
            return True

        result = self.orchestrator.process_message(self.session_id, text, client, self.temperature)
        if isinstance(result, Success):
            self.ctx.send_to_user(f"{client.name}: {result.value}")
        elif isinstance(result, Failure):
            self.ctx.error_message(result.reason)
        return True

    def run(self, read_line: Callable[[str], str] = input) -> None:
        """Read lines until :quit or EOF."""
        self.ctx.send_to_user(f"Session {self.session_id}. Type :help for commands.")
        while True:
            try:
                text = read_line("> ").strip()
            except EOFError:
                self.ctx.send_to_user("\nGoodbye.")
                break
            if not text:
                continue
            if not self.handle_user_input(text):
                self.ctx.send_to_user("Goodbye.")
                break
