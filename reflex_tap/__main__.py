from __future__ import annotations

import logging
import os
import sys
from pathlib import Path

LOG_LEVEL_ENV = "REFLEX_TAP_LOG_LEVEL"


def _ensure_repo_root_on_path() -> None:
    """Ensure the repository root (parent of this package) is on ``sys.path``.

    If this module is executed as a script (``python reflex_tap/__main__.py``),
    the package may not be discoverable by Python.
    """
    pkg_dir = Path(__file__).resolve().parent
    repo_root = pkg_dir.parent
    repo_root_str = str(repo_root)
    if repo_root_str not in sys.path:
        sys.path.insert(0, repo_root_str)


try:
    # Works when executed as a module: python -m reflex_tap
    from .app import run  # type: ignore[attr-defined]
except ImportError:
    # Works when executed as a script.
    _ensure_repo_root_on_path()
    from reflex_tap.app import run  # type: ignore[attr-defined]


def main() -> int:
    """Entry point for running the game from the command line."""
    level_name = os.environ.get(LOG_LEVEL_ENV, "WARNING").strip().upper()
    logging.basicConfig(
        level=getattr(logging, level_name, logging.WARNING),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    return run()


if __name__ == "__main__":
    raise SystemExit(main())
