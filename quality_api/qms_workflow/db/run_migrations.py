"""
Alembic runner for the quality workflow schema, no alembic.ini required.

    python -m qms_workflow.db.run_migrations upgrade head
    python -m qms_workflow.db.run_migrations downgrade -1
    python -m qms_workflow.db.run_migrations current
    python -m qms_workflow.db.run_migrations show c3d9e1a7f5b2

The API calls upgrade_to_head() at startup when RUN_MIGRATIONS_ON_STARTUP is set.
"""

import logging
import sys
from pathlib import Path
from typing import Callable, Dict, List, Tuple

from alembic import command
from alembic.config import Config

logger = logging.getLogger(__name__)

MIGRATIONS_DIR = Path(__file__).resolve().parent / "migrations"

# command name -> (alembic function, default positional args)
COMMANDS: Dict[str, Tuple[Callable[..., None], List[str]]] = {
    "upgrade": (command.upgrade, ["head"]),
    "downgrade": (command.downgrade, ["-1"]),
    "current": (command.current, []),
    "history": (command.history, []),
    "heads": (command.heads, []),
    "show": (command.show, ["head"]),
    "revision": (command.revision, []),
}


# PUBLIC_INTERFACE
def alembic_config() -> Config:
    """Config pointing at the packaged migrations; env.py supplies the async URL itself."""
    from qms_workflow.db.config import get_settings

    cfg = Config()
    cfg.set_main_option("script_location", str(MIGRATIONS_DIR))
    cfg.set_main_option("sqlalchemy.url", get_settings().sync_database_url)
    return cfg


# PUBLIC_INTERFACE
def upgrade_to_head() -> None:
    logger.info("Applying quality workflow migrations up to head")
    command.upgrade(alembic_config(), "head")
    logger.info("Quality workflow schema is at head")


# PUBLIC_INTERFACE
def main(argv: List[str] | None = None) -> int:
    """Dispatch one Alembic command; returns a process exit code."""
    args = list(sys.argv[1:] if argv is None else argv)
    if not args or args[0] not in COMMANDS:
        print(f"Usage: run_migrations <{'|'.join(COMMANDS)}> [args...]", file=sys.stderr)
        return 2
    func, defaults = COMMANDS[args[0]]
    func(alembic_config(), *(args[1:] or defaults))
    return 0


if __name__ == "__main__":
    sys.exit(main())
