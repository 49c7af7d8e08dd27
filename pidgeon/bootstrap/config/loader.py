import argparse
import os
from pathlib import Path

CONFIG_ENV = "PIDGEONCONFIG"
DEFAULT_CONFIGFILE = "pidgeon.yaml"


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="pidgeon",
        description=(
            "Send code to a Pidgeon execution server and print the results.\n\n"
            "Snippets travel as length-prefixed JSON frames over a persistent "
            "TCP connection; replies are matched to their request and shown as "
            "they arrive."
        ),
        formatter_class=argparse.RawTextHelpFormatter
    )

    parser.add_argument(
        "-c", "--config",
        type=str,
        help="Path to a Pidgeon configuration file"
    )

    parser.add_argument(
        "-p", "--peer",
        type=str,
        help="Override the peer address, as host:port"
    )

    parser.add_argument(
        "-l", "--log-level",
        type=str,
        default="WARNING",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help=(
            "Logging verbosity.\n"
            "DEBUG    → frames, dispatch and reconnect details.\n"
            "INFO     → connection lifecycle.\n"
            "WARNING  → only problems (default).\n"
            "ERROR    → only errors.\n"
            "CRITICAL → only critical failures."
        ),
    )

    commands = parser.add_subparsers(dest="command", metavar="<command>")
    commands.required = True

    commands.add_parser(
        "check",
        help="Tell whether the peer is available, busy or unreachable"
    )

    send = commands.add_parser("send", help="Send one snippet and print its result")
    send.add_argument("code", type=str, help="Code to execute")

    file = commands.add_parser("file", help="Send a whole file and print its result")
    file.add_argument("path", type=Path, help="File to execute")

    commands.add_parser("repl", help="Interactive session")

    return parser


def get_cli_args(argv: list[str] | None = None) -> argparse.Namespace:
    return build_parser().parse_args(argv)


def get_configfile() -> Path | None:
    """
    Locate the configuration file.

    Priority: the PIDGEONCONFIG environment variable (which the command
    line sets from --config), then 'pidgeon.yaml' in the current working
    directory. Without either, built-in defaults apply and None is
    returned. A file named explicitly but missing is fatal.
    """
    raw = os.getenv(CONFIG_ENV)

    if raw is None:
        file = Path.cwd() / DEFAULT_CONFIGFILE
        return file if file.is_file() else None

    file = Path(raw).expanduser()
    if not file.is_file():
        raise SystemExit(
            f"[config] Configuration file not found: '{file}'.\n"
            "  - Use --config <file.yaml>\n"
            f"  - Or set the {CONFIG_ENV} environment variable\n"
            f"  - Or place a '{DEFAULT_CONFIGFILE}' file in the current working directory."
        )

    return file
