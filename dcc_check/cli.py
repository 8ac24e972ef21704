#!/usr/bin/env python3

import argparse
import dataclasses
import logging
import sys
from dotenv import load_dotenv
from .client import CheckClient
from .config import DccConfig
from .errors import ConfigError
from .message import build_request

# Load .env file from current directory or parent directories
load_dotenv()


def read_message(path: str) -> bytes:
    """Read a raw message from a file, or stdin for '-'"""
    if path == "-":
        return sys.stdin.buffer.read()
    with open(path, "rb") as f:
        return f.read()


def build_config(args) -> DccConfig:
    """Environment settings, overridden by whatever was given on the command line"""
    config = DccConfig.from_env()
    overrides = {
        "timeout": args.timeout,
        "home": args.home,
        "dccifd_path": args.dccifd,
        "dccproc_path": args.dccproc,
        "options": args.options,
    }
    overrides = {k: v for k, v in overrides.items() if v is not None}
    return dataclasses.replace(config, **overrides)


def format_outcome(name: str, outcome) -> str:
    lines = [f"{name}: {outcome.status.upper()}"]
    if outcome.reason is not None:
        lines.append(f"  • Reason: {outcome.reason.value}")
    header = outcome.report_header()
    if header:
        lines.append(f"  • {header}")
    return "\n".join(lines)


def main(argv=None):
    parser = argparse.ArgumentParser(
        description="Check messages against the Distributed Checksum Clearinghouse (DCC)"
    )
    parser.add_argument("files", nargs="*", default=["-"], help="Message files (default: stdin)")
    parser.add_argument("-v", "--verbose", action="store_true", help="Log debug output to stderr")
    parser.add_argument("--timeout", type=int, help="Seconds to wait for DCC (DCC_TIMEOUT)")
    parser.add_argument("--home", help="DCC home directory (DCC_HOME)")
    parser.add_argument("--dccifd", help="Path to the dccifd socket (DCC_DCCIFD_PATH)")
    parser.add_argument("--dccproc", help="Path to the dccproc executable (DCC_PATH)")
    parser.add_argument("--options", help="Extra dccproc options, [A-Z -] only (DCC_OPTIONS)")
    parser.add_argument("--client-ip", default="0.0.0.0", help="SMTP client IP address")
    parser.add_argument("--helo", default="", help="SMTP HELO value")
    parser.add_argument("--sender", default="", help="Envelope sender")
    parser.add_argument("--rcpt", action="append", default=[], help="Envelope recipient (repeatable)")
    args = parser.parse_args(argv)

    if args.verbose:
        logging.basicConfig(level=logging.DEBUG, stream=sys.stderr)

    try:
        config = build_config(args)
    except ConfigError as e:
        print(f"Invalid configuration: {e}", file=sys.stderr)
        return 2

    client = CheckClient(config)
    any_hit = False
    for path in args.files:
        try:
            raw = read_message(path)
        except OSError as e:
            print(f"Cannot read {path}: {e}", file=sys.stderr)
            continue

        request = build_request(
            raw,
            client_ip=args.client_ip,
            helo=args.helo,
            sender=args.sender,
            recipients=args.rcpt,
        )
        outcome = client.check(request)
        any_hit = any_hit or outcome.is_hit
        print(format_outcome("<stdin>" if path == "-" else path, outcome), flush=True)

    return 1 if any_hit else 0


if __name__ == "__main__":
    sys.exit(main())
