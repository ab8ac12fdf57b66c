import sys

from textquest.cli import main

sys.exit(main())
