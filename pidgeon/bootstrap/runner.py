import asyncio
import logging
from pathlib import Path

from pidgeon.bootstrap.config.settings import PidgeonConfig
from pidgeon.bootstrap.deps import build_session
from pidgeon.core.errors import BusyError, PidgeonError
from pidgeon.core.models.context import PeerStatus, SourceLocation
from pidgeon.core.session.protocol import SessionProtocol
from pidgeon.infra.console_presenter import ConsolePresenter

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_BUSY = 3

logger = logging.getLogger("bootstrap.runner")


async def execute(
    session: SessionProtocol,
    presenter: ConsolePresenter,
    code: str,
    location: SourceLocation,
    timeout: float,
) -> bool:
    """
    Send `code` tagged with `location` and wait for its result.

    Returns True for a successful result, False for an error result or
    when nothing came back within `timeout` seconds.
    """
    reply = presenter.expect(location)
    request_id = session.send_code(code, location)
    try:
        _, is_error = await asyncio.wait_for(reply, timeout=timeout)
    except asyncio.TimeoutError:
        presenter.forget(location)
        presenter.present(f"No reply to request {request_id} after {timeout}s", None, True)
        return False
    return not is_error


async def run_check(config: PidgeonConfig) -> int:
    presenter = ConsolePresenter()
    session = build_session(config, presenter)
    status = await session.check()
    presenter.status(f"{config.peer.host}:{config.peer.port} is {status}")
    return EXIT_OK if status == PeerStatus.available else EXIT_FAILED


async def run_once(config: PidgeonConfig, code: str, location: SourceLocation) -> int:
    """Open a session, run a single snippet, print the result, close."""
    presenter = ConsolePresenter(notify=False)
    session = build_session(config, presenter)
    errors: list[PidgeonError] = []

    def on_error(error: PidgeonError) -> None:
        errors.append(error)
        presenter.present(str(error), None, True)

    try:
        if not await session.start(on_error=on_error):
            return EXIT_FAILED

        ok = await execute(session, presenter, code, location, config.client.reply_timeout)
    finally:
        await session.stop()

    if any(isinstance(error, BusyError) for error in errors):
        return EXIT_BUSY
    return EXIT_OK if ok else EXIT_FAILED


async def run_file(config: PidgeonConfig, path: Path) -> int:
    try:
        code = path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as ex:
        logger.error(f"Unable to read {path}: {ex}")
        ConsolePresenter().present(f"Unable to read {path}: {ex}", None, True)
        return EXIT_FAILED

    return await run_once(config, code, SourceLocation(str(path), 1))
