"""
consent-sync CLI

Commands:
- start:  startup flow (prompt if undecided, resend if unsynchronized)
- status: show the stored consent record
- set:    record a decision (accept/deny) and send it
- prompt: ask the decision on the terminal and send it
- sync:   resend the stored decision once
- reset:  forget the stored decision
"""

import argparse
import asyncio
import json
import sys
from pathlib import Path
from typing import List, Optional

from consent_sync.app import build_coordinator
from consent_sync.config import Config
from consent_sync.coordinator import ConsentCoordinator
from consent_sync.errors import ConsentError
from consent_sync.logging_utils import setup_logging
from consent_sync.models import ConsentStatus, SyncResult
from consent_sync.prompt import ConsolePrompt


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser."""
    parser = argparse.ArgumentParser(
        prog="consent-sync",
        description="Keep a local consent decision in sync with the consent server",
    )
    parser.add_argument("--config", "-c", type=Path, help="Path to a JSON config file")
    parser.add_argument("--verbose", "-v", action="store_true", help="Debug logging")

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    subparsers.add_parser("start", help="Run the startup consent flow")

    status_parser = subparsers.add_parser("status", help="Show the stored consent")
    status_parser.add_argument("--json", action="store_true", help="Output as JSON")

    set_parser = subparsers.add_parser("set", help="Record a consent decision")
    set_parser.add_argument("decision", choices=["accept", "deny"], help="The decision")

    prompt_parser = subparsers.add_parser("prompt", help="Ask for consent on the terminal")
    prompt_parser.add_argument("--title", help="Custom prompt title")
    prompt_parser.add_argument("--message", help="Custom prompt message")

    subparsers.add_parser("sync", help="Resend the stored decision")
    subparsers.add_parser("reset", help="Forget the stored decision")

    return parser


class ConsentCLI:
    """consent-sync command-line interface."""

    def __init__(self, config: Optional[Config] = None):
        self.parser = create_parser()
        self.config = config
        self.coordinator: Optional[ConsentCoordinator] = None

    def _ensure_coordinator(self, args: argparse.Namespace) -> ConsentCoordinator:
        if self.coordinator is None:
            if self.config is None:
                self.config = Config(config_file=args.config).load()
            self.coordinator = build_coordinator(self.config)
        return self.coordinator

    def _prompt(self) -> ConsolePrompt:
        return ConsolePrompt(app_name=self.config.get("general.app_name", "This application"))

    @staticmethod
    def _report(result: Optional[SyncResult]) -> int:
        if result is None:
            return 0
        if result.synced:
            print(f"Consent {result.status.name} acknowledged by server.")
            return 0
        if result.superseded:
            print(f"Consent {result.status.name} superseded by a newer decision.")
            return 0
        print(f"Consent {result.status.name} saved locally, server sync failed: {result.error}")
        return 1

    async def cmd_start(self, args: argparse.Namespace) -> int:
        """Startup flow."""
        coordinator = self._ensure_coordinator(args)
        needs_prompt = []

        task = coordinator.initialize_and_reconcile(lambda: needs_prompt.append(True))
        if needs_prompt:
            task = await coordinator.ask_consent(self._prompt())
            if task is None:
                print("No decision recorded.")
                return 1
        elif task is None:
            print(f"Consent: {coordinator.get_status().name} (synchronized: {coordinator.is_synced()})")
            return 0
        return self._report(await task)

    async def cmd_status(self, args: argparse.Namespace) -> int:
        """Show the stored consent record."""
        record = self._ensure_coordinator(args).get_record()

        if args.json:
            print(json.dumps(record.to_dict(), indent=2))
        else:
            print("Consent Status")
            print("=" * 40)
            print(f"Status: {record.status.name}")
            print(f"Updated: {record.to_dict()['updated_at'] or 'never'}")
            print(f"Synchronized: {'Yes' if record.remotely_synced else 'No'}")
            print(f"Version: {record.version}")
        return 0

    async def cmd_set(self, args: argparse.Namespace) -> int:
        """Record a decision."""
        coordinator = self._ensure_coordinator(args)
        task = coordinator.set_status(ConsentStatus.parse(args.decision))
        return self._report(await task)

    async def cmd_prompt(self, args: argparse.Namespace) -> int:
        """Ask on the terminal."""
        coordinator = self._ensure_coordinator(args)
        task = await coordinator.ask_consent(self._prompt(), title=args.title, message=args.message)
        if task is None:
            print("No decision recorded.")
            return 1
        return self._report(await task)

    async def cmd_sync(self, args: argparse.Namespace) -> int:
        """Resend the stored decision."""
        coordinator = self._ensure_coordinator(args)
        status = coordinator.get_status()
        if not status.is_decided:
            print("No consent decision stored.")
            return 1
        try:
            await coordinator.send_to_remote(status)
        except ConsentError as e:
            print(f"Sync failed: {e}")
            return 1
        print(f"Consent {status.name} synchronized: {coordinator.is_synced()}")
        return 0

    async def cmd_reset(self, args: argparse.Namespace) -> int:
        """Forget the stored decision."""
        self._ensure_coordinator(args).reset()
        print("Consent record cleared.")
        return 0

    async def run(self, argv: Optional[List[str]] = None) -> int:
        """Parse arguments and run the command."""
        args = self.parser.parse_args(argv)
        if not args.command:
            self.parser.print_help()
            return 1

        if self.config is None:
            self.config = Config(config_file=args.config).load()
        general = self.config.general_settings()
        setup_logging(
            "DEBUG" if args.verbose else general.log_level,
            log_file=general.log_file,
            json_logs=general.json_logs,
            app_name=general.app_name,
        )

        handler = getattr(self, f"cmd_{args.command}")
        try:
            return await handler(args)
        finally:
            if self.coordinator is not None:
                await self.coordinator.close()


def main() -> int:
    """Main entry point."""
    cli = ConsentCLI()
    return asyncio.run(cli.run())


if __name__ == "__main__":
    sys.exit(main())
