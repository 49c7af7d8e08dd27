import asyncio
import os

from pidgeon.bootstrap.config.loader import CONFIG_ENV, get_cli_args
from pidgeon.bootstrap.config.settings import PeerSettings, PidgeonConfig
from pidgeon.bootstrap.deps import get_config
from pidgeon.bootstrap.runner import run_check, run_file, run_once
from pidgeon.bootstrap.shell import PidgeonShell
from pidgeon.core.helpers.utils import parse_address, setup_logging
from pidgeon.core.models.context import SourceLocation


def resolve_config(config_path: str | None, peer: str | None) -> PidgeonConfig:
    # Priority: CLI > ENV > default file in current working directory
    if config_path:
        os.environ[CONFIG_ENV] = config_path

    config = get_config()
    if peer is None:
        return config

    try:
        host, port = parse_address(peer, config.peer.port)
    except ValueError as ex:
        raise SystemExit(f"[config] {ex}")

    return config.model_copy(update={"peer": PeerSettings(host=host, port=port)})


def main(argv: list[str] | None = None) -> int:
    args = get_cli_args(argv)
    setup_logging(args.log_level)
    config = resolve_config(args.config, args.peer)

    if args.command == "repl":
        shell = PidgeonShell(config)
        try:
            shell.cmdloop()
        except KeyboardInterrupt:
            print()
        finally:
            shell.close()
        return 0

    if args.command == "check":
        coro = run_check(config)
    elif args.command == "send":
        coro = run_once(config, args.code, SourceLocation("<arg>", 1))
    else:
        coro = run_file(config, args.path)

    try:
        return asyncio.run(coro)
    except KeyboardInterrupt:
        return 130


if __name__ == "__main__":
    raise SystemExit(main())
