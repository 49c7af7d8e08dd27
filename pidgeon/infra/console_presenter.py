import asyncio
import logging
import sys
from typing import Any, TextIO

from pidgeon.core.ports.presenter import Presenter


class ConsolePresenter(Presenter):
    """
    Presenter writing results to a text stream, one line per event:

        [<context>] <content>       result attached to a request
        <content>                   generic notification
        error: ...                  either of the above, for failures

    Short successful results reach the generic channel as well as their
    own context. With `notify=False` those context-less successes are
    only logged, which avoids printing every short reply twice in a
    terminal. Errors are always written.

    `expect()` lets a caller wait for the result bound to a context,
    which is how the command line turns the asynchronous protocol into
    "send, then print the answer".
    """
    def __init__(self, stream: TextIO | None = None, notify: bool = True) -> None:
        self._stream = stream or sys.stdout
        self._notify = notify
        self._waiters: dict[Any, asyncio.Future[tuple[str, bool]]] = {}
        self._logger = logging.getLogger("infra.console_presenter")

    def expect(self, context: Any) -> asyncio.Future[tuple[str, bool]]:
        """Future resolved with (content, is_error) once `context` gets its result."""
        future = asyncio.get_running_loop().create_future()
        self._waiters[context] = future
        return future

    def forget(self, context: Any) -> None:
        future = self._waiters.pop(context, None)
        if future is not None and not future.done():
            future.cancel()

    def present(self, content: str, context: Any | None, is_error: bool) -> None:
        if context is None and not is_error and not self._notify:
            self._logger.debug(f"Notification: {content}")
            return

        prefix = "error: " if is_error else ""
        if context is not None:
            self._write(f"[{context}] {prefix}{content}")
        else:
            self._write(f"{prefix}{content}")

        future = self._waiters.pop(context, None) if context is not None else None
        if future is not None and not future.done():
            future.set_result((content, is_error))

    def status(self, text: str) -> None:
        self._write(f"-- {text}")

    def _write(self, line: str) -> None:
        self._stream.write(line + "\n")
        self._stream.flush()
