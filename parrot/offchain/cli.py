#!/usr/bin/env python3
"""
parrot-offchain CLI

Command-line tools for the signer's side of the off-chain protocol and for
inspecting envelopes handed over out of band. Nothing here talks to a
ledger: signing takes an explicit nonce so it works on an air-gapped host.

Usage:
    parrot-offchain <command> [options]
    python -m parrot.offchain <command> [options]

Commands:
    address         Show the address of a development key (//Name) or seed
    sign-transfer   Sign a delegated transfer authorization
    sign-offer      Sign a swap offer
    inspect         Decode an envelope and check its signature
    config          Show or validate configuration
"""

from __future__ import annotations

import argparse
import asyncio
import json
import string
import sys
from enum import Enum
from pathlib import Path
from typing import Any, List, Optional

import yaml

from parrot.keys import Identity, Keypair, ss58_encode
from parrot.offchain import __version__
from parrot.offchain.authorization import SwapAuthorization, TransferAuthorization
from parrot.offchain.config import get_config, get_config_manager
from parrot.offchain.envelope import (
    SignedEnvelope,
    build_envelope,
    envelope_from_dict,
    envelope_from_hex,
    envelope_to_dict,
    envelope_to_hex,
)
from parrot.offchain.errors import OffchainError
from parrot.offchain.hardening import Validators
from parrot.offchain.observability import OffchainLayer, configure_logging, get_logger
from parrot.offchain.signer import Signer, verify_authorization

logger = get_logger("cli", OffchainLayer.CLI)

_HEX_DIGITS = frozenset(string.hexdigits)


class OutputFormat(Enum):
    """Output format options."""
    JSON = "json"
    YAML = "yaml"
    TEXT = "text"


class CLIError(Exception):
    """CLI error with exit code."""
    def __init__(self, message: str, exit_code: int = 1):
        super().__init__(message)
        self.exit_code = exit_code


def format_output(data: Any, fmt: OutputFormat = OutputFormat.JSON) -> str:
    """Format data for output."""
    if isinstance(data, str):
        return data
    if fmt == OutputFormat.JSON:
        return json.dumps(data, indent=2, default=str)
    elif fmt == OutputFormat.YAML:
        return yaml.safe_dump(data, default_flow_style=False)
    elif isinstance(data, dict):
        return "\n".join(f"{k}: {v}" for k, v in data.items())
    return str(data)


def load_key(spec: str) -> Keypair:
    """A `//Name` development URI or a 0x-prefixed 32-byte Ed25519 seed."""
    if spec.startswith("//"):
        return Keypair.from_uri(spec)
    seed = Validators.validate_bytes(spec, "key", min_length=32, max_length=32).unwrap()
    return Keypair.from_seed(seed)


def read_envelope(source: str) -> SignedEnvelope:
    """Accept hex, JSON, or a path to a file holding either ('-' reads stdin)."""
    text = source.strip()
    if text == "-":
        text = sys.stdin.read().strip()
    elif not text.startswith(("0x", "0X", "{")) and not _HEX_DIGITS.issuperset(text):
        try:
            text = Path(text).read_text(encoding="utf-8").strip()
        except OSError as ex:
            raise CLIError(f"Not an envelope or readable file: {source[:40]}: {ex.strerror or ex}") from ex

    if text.startswith("{"):
        try:
            return envelope_from_dict(json.loads(text))
        except (KeyError, json.JSONDecodeError) as ex:
            raise CLIError(f"Malformed envelope JSON: {ex}") from ex
    return envelope_from_hex(text)


class OffchainCLI:
    """Main CLI application."""

    def __init__(self):
        self.parser = argparse.ArgumentParser(
            prog="parrot-offchain",
            description="Parrot off-chain authorization tools",
            formatter_class=argparse.RawDescriptionHelpFormatter,
        )
        self.parser.add_argument(
            "--version", "-V",
            action="version",
            version=f"parrot-offchain {__version__}",
        )
        self.parser.add_argument(
            "--format", "-f",
            choices=["json", "yaml", "text"],
            default="json",
            help="Output format (default: json)",
        )
        self.parser.add_argument(
            "--log-level",
            choices=["debug", "info", "warning", "error"],
            help="Log level (default: from configuration)",
        )
        self.parser.add_argument(
            "--quiet", "-q",
            action="store_true",
            help="Suppress error messages",
        )

        self.subparsers = self.parser.add_subparsers(dest="command", help="Commands")
        self._register_commands()

    def _register_commands(self) -> None:
        """Register all command groups."""
        self._register_key_commands()
        self._register_sign_commands()
        self._register_inspect_commands()
        self._register_config_commands()

    def _register_key_commands(self) -> None:
        address = self.subparsers.add_parser("address", help="Show the address of a key")
        address.add_argument("key", help="//Name development URI or 0x seed")
        address.add_argument("--prefix", type=int, help="SS58 prefix (default: from configuration)")

    def _register_sign_commands(self) -> None:
        """Register signing commands. Both take the nonce explicitly."""
        transfer = self.subparsers.add_parser("sign-transfer", help="Sign a delegated transfer")
        transfer.add_argument("--key", "-k", required=True, help="Signer: //Name or 0x seed")
        transfer.add_argument("--dest", "-d", required=True, help="Destination address or 0x public key")
        transfer.add_argument("--amount", "-a", required=True, type=int, help="Amount in base units")
        transfer.add_argument("--nonce", "-n", required=True, type=int, help="Signer's current nonce")
        transfer.add_argument("--encoding", "-e", choices=["json", "hex"], default="json",
                              help="Envelope encoding (default: json)")

        offer = self.subparsers.add_parser("sign-offer", help="Sign a swap offer")
        offer.add_argument("--key", "-k", required=True, help="Offerer: //Name or 0x seed")
        offer.add_argument("--offered-token", required=True, type=int, help="Token id given up")
        offer.add_argument("--offered-amount", required=True, type=int, help="Amount given up")
        offer.add_argument("--requested-token", required=True, type=int, help="Token id wanted")
        offer.add_argument("--requested-amount", required=True, type=int, help="Amount wanted")
        offer.add_argument("--nonce", "-n", required=True, type=int, help="Offerer's current nonce")
        offer.add_argument("--encoding", "-e", choices=["json", "hex"], default="json",
                           help="Envelope encoding (default: json)")

    def _register_inspect_commands(self) -> None:
        inspect = self.subparsers.add_parser("inspect", help="Decode and verify an envelope")
        inspect.add_argument("envelope", help="Envelope as hex or JSON, a file path, or - for stdin")

    def _register_config_commands(self) -> None:
        """Register config subcommands."""
        config = self.subparsers.add_parser("config", help="Configuration management")
        config_sub = config.add_subparsers(dest="subcommand")

        config_sub.add_parser("show", help="Show current configuration")
        config_sub.add_parser("validate", help="Validate configuration")

    def run(self, args: Optional[List[str]] = None) -> int:
        """Run the CLI."""
        parsed = self.parser.parse_args(args)

        if not parsed.command:
            self.parser.print_help()
            return 0

        manager = get_config_manager()
        manager.load_defaults()
        observability = manager.config.observability
        configure_logging(
            parsed.log_level or observability.log_level.get(),
            observability.log_format.get(),
        )

        try:
            fmt = OutputFormat(parsed.format)
            result = self._dispatch(parsed)

            if result is not None:
                print(format_output(result, fmt))

            return 0

        except CLIError as e:
            if not parsed.quiet:
                print(f"Error: {e}", file=sys.stderr)
            return e.exit_code

        except (OffchainError, ValueError) as e:
            logger.error("Command failed", error_code=type(e).__name__, command=parsed.command, error=str(e))
            if not parsed.quiet:
                print(f"Error: {e}", file=sys.stderr)
            return 1

    def _dispatch(self, args: argparse.Namespace) -> Any:
        """Dispatch command to handler."""
        cmd = args.command.replace("-", "_")
        subcmd = getattr(args, "subcommand", None)

        handler_name = f"_handle_{cmd}_{subcmd}" if subcmd else f"_handle_{cmd}"
        handler = getattr(self, handler_name, None)

        if handler is None:
            raise CLIError(f"Unknown command: {args.command} {subcmd or ''}", exit_code=2)

        return handler(args)

    # Key handlers
    def _handle_address(self, args: argparse.Namespace) -> Any:
        key = load_key(args.key)
        prefix = args.prefix if args.prefix is not None else get_config().ledger.ss58_prefix.get()
        return {
            "address": ss58_encode(key.identity.public_key, prefix),
            "public_key": key.identity.to_hex(),
            "ss58_prefix": prefix,
        }

    # Signing handlers
    def _handle_sign_transfer(self, args: argparse.Namespace) -> Any:
        key = load_key(args.key)
        authorization = TransferAuthorization(
            amount=args.amount,
            destination=Identity.parse(args.dest),
            nonce=args.nonce,
        )
        return self._sign(authorization, key, args.encoding)

    def _handle_sign_offer(self, args: argparse.Namespace) -> Any:
        key = load_key(args.key)
        offer = SwapAuthorization(
            offered_token=args.offered_token,
            offered_amount=args.offered_amount,
            requested_token=args.requested_token,
            requested_amount=args.requested_amount,
            nonce=args.nonce,
        )
        return self._sign(offer, key, args.encoding)

    def _sign(self, authorization: Any, key: Keypair, encoding: str) -> Any:
        signature = asyncio.run(Signer().sign(authorization, key))
        envelope = build_envelope(authorization, signature, key.identity)
        if encoding == "hex":
            return envelope_to_hex(envelope)
        return envelope_to_dict(envelope)

    # Inspection handlers
    def _handle_inspect(self, args: argparse.Namespace) -> Any:
        envelope = read_envelope(args.envelope)
        result = envelope_to_dict(envelope)
        result["signer_public_key"] = envelope.signer.to_hex()
        result["signature_valid"] = verify_authorization(
            envelope.authorization, envelope.signature, envelope.signer,
        )
        return result

    # Config handlers
    def _handle_config_show(self, args: argparse.Namespace) -> Any:
        return get_config_manager().config.to_dict()

    def _handle_config_validate(self, args: argparse.Namespace) -> Any:
        errors = get_config_manager().validate()
        if errors:
            raise CLIError("Invalid configuration: " + "; ".join(errors))
        return {"valid": True, "errors": []}

    def _handle_config(self, args: argparse.Namespace) -> Any:
        raise CLIError("config requires a subcommand: show, validate", exit_code=2)


def main(argv: Optional[List[str]] = None) -> int:
    """CLI entry point."""
    cli = OffchainCLI()
    return cli.run(argv)


if __name__ == "__main__":
    sys.exit(main())
