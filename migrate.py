#!/usr/bin/env python3
"""
Run Alembic against migrations/alembic.ini with the service's database settings.

Usage:
    python migrate.py upgrade head                 # Apply all migrations
    python migrate.py downgrade -1                 # Roll back one migration
    python migrate.py revision -m "Description"    # New autogenerated revision
    python migrate.py current | history
"""

import subprocess
import sys
from pathlib import Path

from dotenv import load_dotenv

load_dotenv(override=True)

ALEMBIC_CONFIG = Path(__file__).parent / "migrations" / "alembic.ini"


def build_command(args: list[str]) -> list[str]:
    """Build the alembic invocation; ``revision`` always autogenerates."""
    args = list(args)
    if args and args[0] == "revision" and "--autogenerate" not in args:
        args.insert(1, "--autogenerate")
    return [sys.executable, "-m", "alembic", "-c", str(ALEMBIC_CONFIG), *args]


def main() -> None:
    try:
        result = subprocess.run(build_command(sys.argv[1:]), check=False)
    except KeyboardInterrupt:
        print("\nOperation cancelled by user")
        sys.exit(1)
    sys.exit(result.returncode)


if __name__ == "__main__":
    if len(sys.argv) < 2:
        print(__doc__)
        sys.exit(1)

    main()
