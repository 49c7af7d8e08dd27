import asyncio
import cmd

from pidgeon.bootstrap.config.settings import PidgeonConfig
from pidgeon.bootstrap.deps import build_session
from pidgeon.bootstrap.runner import execute
from pidgeon.core.helpers.spawn import TaskSpawner
from pidgeon.core.models.context import SourceLocation
from pidgeon.infra.console_presenter import ConsolePresenter


class PidgeonShell(cmd.Cmd):
    """
    Interactive front end. Any line that is not a shell command is sent
    to the peer as code, and the shell waits for its result before
    prompting again.

    The shell owns a private event loop and runs it only while a command
    executes; replies that arrive in between are read on the next
    command.
    """
    intro = "Entering pidgeon interactive mode. Type 'help' for commands, 'exit' to leave."
    prompt = "pidgeon> "

    def __init__(self, config: PidgeonConfig, presenter: ConsolePresenter | None = None) -> None:
        super().__init__()

        self._config = config
        self._loop = asyncio.new_event_loop()
        self._presenter = presenter or ConsolePresenter(notify=False)
        self._spawner = TaskSpawner(self._loop)
        self._session = build_session(config, self._presenter, self._spawner)
        self._lines = 0

    def close(self) -> None:
        if self._loop.is_closed():
            return
        try:
            self._loop.run_until_complete(self._session.stop())
            self._loop.run_until_complete(self._spawner.cancel_all())
        finally:
            self._loop.close()

    def emptyline(self) -> bool:
        return False

    def default(self, line: str) -> bool:
        if not self._session.connected:
            self._presenter.present("Not connected, run 'connect' first", None, True)
            return False

        self._lines += 1
        location = SourceLocation("<repl>", self._lines)
        self._loop.run_until_complete(
            execute(
                self._session,
                self._presenter,
                line,
                location,
                self._config.client.reply_timeout,
            )
        )
        return False

    def do_send(self, line: str) -> bool:
        """send <code>: send code to the peer (same as typing it)."""
        if not line:
            print("Usage: send <code>")
            return False
        return self.default(line)

    def do_connect(self, _: str) -> bool:
        """connect: open the session with the peer."""
        if self._session.connected:
            self._presenter.status("already connected")
            return False

        if self._loop.run_until_complete(self._session.start()):
            self._presenter.status(f"connected to {self._session.connection.address}")
        return False

    def do_disconnect(self, _: str) -> bool:
        """disconnect: close the session."""
        self._loop.run_until_complete(self._session.stop())
        return False

    def do_status(self, _: str) -> bool:
        """status: show the connection state and pending requests."""
        state = "connected" if self._session.connected else "disconnected"
        self._presenter.status(
            f"{state} ({self._session.connection.address}), "
            f"{self._session.pending} pending request(s)"
        )
        return False

    def do_check(self, _: str) -> bool:
        """check: probe whether the peer is available, without using the session."""
        status = self._loop.run_until_complete(self._session.check())
        self._presenter.status(f"peer is {status}")
        return False

    def do_exit(self, _: str) -> bool:
        """exit: leave the shell."""
        return True

    def do_quit(self, line: str) -> bool:
        """quit: leave the shell."""
        return self.do_exit(line)

    def do_EOF(self, line: str) -> bool:
        print()
        return self.do_exit(line)
