from __future__ import annotations

import sys
from pathlib import Path


def _ensure_repo_root_on_path() -> None:
    """Ensure the repository root (parent of this package) is on ``sys.path``.

    Needed when this module is executed as a script
    (``python mathetris/__main__.py``) rather than with ``python -m``.
    """
    pkg_dir = Path(__file__).resolve().parent
    repo_root_str = str(pkg_dir.parent)
    if repo_root_str not in sys.path:
        sys.path.insert(0, repo_root_str)


if __package__:
    from .app import run
else:
    _ensure_repo_root_on_path()
    from mathetris.app import run


def main() -> int:
    """Entry point for running the drill from the command line."""
    return run()


if __name__ == "__main__":
    raise SystemExit(main())
