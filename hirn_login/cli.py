import argparse
import logging
import sys
from enum import IntEnum
from ipaddress import IPv4Address
from pathlib import Path
from typing import Optional, Sequence

import requests

from hirn_login import __version__
from hirn_login.logging_config import setup_logging
from hirn_login.portal import (
    LOGIN_PORTAL_URL,
    LOGIN_URL,
    AuthenticationFailed,
    ParseError,
    PortalClient,
    PortalError,
    TransportError,
    UnexpectedResponse,
)
from hirn_login.settings import load_config, log_dir_from

logger = logging.getLogger(__name__)


class ExitCode(IntEnum):
    SUCCESS = 0
    FAILURE = 1
    BAD_INVOCATION = 2
    CONNECTION_FAILED = 3
    BAD_RESPONSE = 4
    AUTH_FAILED = 5


class CommandError(Exception):
    """A failed command step; the cause holds what actually went wrong."""


def parse_ipv4(value: str) -> IPv4Address:
    try:
        return IPv4Address(value)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"invalid IPv4 address: {value!r}") from exc


def read_password_file(path: Path) -> str:
    try:
        text = path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as exc:
        raise CommandError("failed to read password file") from exc
    if text.endswith("\r\n"):
        return text[:-2]
    if text.endswith("\n"):
        return text[:-1]
    return text


def resolve_target_ip(client: PortalClient, ip: Optional[IPv4Address]) -> Optional[IPv4Address]:
    try:
        return client.resolve_ip(ip)
    except PortalError as exc:
        raise CommandError("failed to determine local ip") from exc


def run_find_ip(client: PortalClient, args: argparse.Namespace) -> None:
    try:
        ip = client.find_local_ip()
    except PortalError as exc:
        raise CommandError("failed to determine local ip") from exc
    if ip is None:
        print("You're not inside the HIRN!")
    else:
        print(f"Local ip: {ip}")


def run_login(client: PortalClient, args: argparse.Namespace) -> None:
    password = read_password_file(args.password_file)
    ip = resolve_target_ip(client, args.ip)
    if ip is None:
        print("Not inside HIRN.")
        return
    try:
        client.login(args.username, password, ip)
    except PortalError as exc:
        raise CommandError("failed to log in") from exc
    print(f"Logged in {ip}.")


def run_logout(client: PortalClient, args: argparse.Namespace) -> None:
    ip = resolve_target_ip(client, args.ip)
    if ip is None:
        print("Not inside HIRN.")
        return
    try:
        client.logout(ip)
    except PortalError as exc:
        raise CommandError("failed to log out") from exc
    print(f"Logged out {ip}.")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="hirn-login",
        description="Log in to and out of the HIRN Lock-And-Key portal.",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("--config", type=Path, help="path to a JSON settings file")
    parser.add_argument("-v", "--verbose", action="store_true", help="log debug output")
    subparsers = parser.add_subparsers(dest="command", metavar="COMMAND", required=True)

    find_ip = subparsers.add_parser("find-ip", help="print the local ip inside HIRN")
    find_ip.set_defaults(handler=run_find_ip)

    ip_help = "ip to authenticate; determined from the portal when omitted"

    login = subparsers.add_parser("login", help="open network access for an ip")
    login.add_argument("--ip", type=parse_ipv4, help=ip_help)
    login.add_argument("username")
    login.add_argument("password_file", type=Path, help="file containing the password")
    login.set_defaults(handler=run_login)

    logout = subparsers.add_parser("logout", help="close network access for an ip")
    logout.add_argument("--ip", type=parse_ipv4, help=ip_help)
    logout.set_defaults(handler=run_logout)

    return parser


def error_chain(exc: BaseException) -> str:
    parts = []
    current: Optional[BaseException] = exc
    while current is not None:
        parts.append(str(current))
        current = current.__cause__
    return ": ".join(part for part in parts if part)


def exit_code_for(exc: BaseException) -> ExitCode:
    current: Optional[BaseException] = exc
    while current is not None:
        if isinstance(current, TransportError):
            return ExitCode.CONNECTION_FAILED
        if isinstance(current, (ParseError, UnexpectedResponse)):
            return ExitCode.BAD_RESPONSE
        if isinstance(current, AuthenticationFailed):
            return ExitCode.AUTH_FAILED
        current = current.__cause__
    return ExitCode.FAILURE


def build_client(session: requests.Session, config: dict) -> PortalClient:
    http_config = config.get("http", {})
    portal_config = config.get("portal", {})
    user_agent = http_config.get("user_agent", "")
    if user_agent:
        session.headers.update({"User-Agent": user_agent})
    return PortalClient(
        session,
        status_url=portal_config.get("status_url") or LOGIN_PORTAL_URL,
        login_url=portal_config.get("login_url") or LOGIN_URL,
        timeout=http_config.get("timeout_seconds"),
    )


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    try:
        config = load_config(args.config)
    except (OSError, ValueError) as exc:
        print(f"error: failed to load settings: {exc}", file=sys.stderr)
        return ExitCode.FAILURE

    log_level = "DEBUG" if args.verbose else config.get("log_level", "INFO")
    setup_logging(log_dir_from(config), log_level=log_level)

    with requests.Session() as session:
        client = build_client(session, config)
        try:
            args.handler(client, args)
        except CommandError as exc:
            logger.debug("Command %s failed", args.command, exc_info=True)
            print(f"error: {error_chain(exc)}", file=sys.stderr)
            return exit_code_for(exc)
    return ExitCode.SUCCESS


if __name__ == "__main__":
    raise SystemExit(main())
