"""textquest — turn-based narrative session engine.

One Session per game. It keeps a bounded conversation history with the
Completion Service, tracks game state (turn, location, inventory, flags,
active dialogue partner), and turns the narrator's labeled output into
speaker-attributed transcript entries.

    session = Session.connect(api_key)
    session.submit("look around")
    session.poll()        # from the control loop, every tick
"""

from .models import GameState, LogEntry, ParsedEntry, TurnResult  # noqa: F401
from .session import Session  # noqa: F401

__version__ = "0.1.0"
