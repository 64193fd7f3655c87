"""
Schema migration CLI for LogVault.

Commands:
- apply: Provision the schema (idempotent)
- revert: Drop the logs table and log_flag type if present (idempotent)
- status: Show the current schema state

Usage:
    logvault-migrate apply
    logvault-migrate revert --db /var/lib/logvault/logvault.db
    logvault-migrate status --format json

Invariants:
    - Failures cause a non-zero exit code
    - Running apply or revert twice has the same effect as running it once
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys

from ..config import Settings
from ..errors import SchemaProvisioningError
from ..schema import SchemaProvisioner, SchemaState
from ..store import Database

logger = logging.getLogger(__name__)


class MigrateCLI:
    """Runs provisioning commands against one database.

    Example:
        >>> cli = MigrateCLI(Database("logvault.db"))
        >>> state = cli.run("apply")
        >>> state.provisioned
        True
    """

    COMMANDS = ("apply", "revert", "status")

    def __init__(self, database: Database) -> None:
        self.provisioner = SchemaProvisioner(database)

    def run(self, command: str) -> SchemaState:
        """Run a command and return the resulting schema state.

        Raises:
            ValueError: If the command is unknown
            SchemaProvisioningError: If provisioning fails
        """
        if command not in self.COMMANDS:
            raise ValueError(f"Unknown command '{command}'. Valid commands: {self.COMMANDS}")
        return asyncio.run(getattr(self.provisioner, command)())

    @staticmethod
    def render(state: SchemaState, output_format: str = "text") -> str:
        """Render a schema state for the terminal."""
        if output_format == "json":
            return json.dumps(state.to_dict(), indent=2, sort_keys=True)

        lines = [f"provisioned: {'yes' if state.provisioned else 'no'}"]
        lines.append(f"  id generation: {'ok' if state.id_generation else 'unavailable'}")
        lines.append(f"  log_flag:      {'present' if state.flag_type else 'missing'}")
        lines.append(f"  logs:          {'present' if state.log_table else 'missing'}")
        applied = ", ".join(state.applied_migrations) or "none"
        lines.append(f"  migrations:    {applied}")
        return "\n".join(lines)


def main(argv: list[str] | None = None) -> None:
    """CLI entry point for the migration tool."""
    parser = argparse.ArgumentParser(description="LogVault schema migration tool")
    parser.add_argument("command", choices=MigrateCLI.COMMANDS, help="Command to run")
    parser.add_argument("--db", help="SQLite database file (default: LOGVAULT_DB_PATH)")
    parser.add_argument(
        "--format", choices=["text", "json"], default="text", help="Output format"
    )
    args = parser.parse_args(argv)

    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")

    settings = Settings.load()
    database = Database(
        args.db or settings.db_path,
        wal_mode=settings.wal_mode,
        busy_timeout_ms=settings.busy_timeout_ms,
    )
    cli = MigrateCLI(database)

    try:
        state = cli.run(args.command)
    except SchemaProvisioningError as e:
        print(f"Schema {args.command} FAILED at step {e.step}: {e.message}", file=sys.stderr)
        sys.exit(1)

    print(cli.render(state, args.format))

    if args.command == "apply" and not state.provisioned:
        sys.exit(1)
    sys.exit(0)


if __name__ == "__main__":
    main()
