"""textquest — dev launcher. Runs the line-oriented game loop."""

import sys
from pathlib import Path

from dotenv import load_dotenv

ROOT = Path(__file__).parent
load_dotenv(ROOT / ".env")

from textquest.cli import main  # noqa: E402

if __name__ == "__main__":
    sys.exit(main())
