"""Console entrypoint bridging to :mod:`keyway.cli`."""

from __future__ import annotations

import sys
from typing import List, Optional

from .cli import main as cli_main


def main(argv: Optional[List[str]] = None) -> None:
    """Delegate execution to :func:`keyway.cli.main`."""

    sys.exit(cli_main(argv))


if __name__ == "__main__":
    main()
