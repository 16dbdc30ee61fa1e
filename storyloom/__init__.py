"""Storyloom — a branching visual-novel engine.

Re-export the public surface so `from storyloom import Engine` works.
"""

from .conditions import evaluate, evaluate_any  # noqa: F401
from .config import Settings, load_settings  # noqa: F401
from .engine import Engine, EngineStatus  # noqa: F401
from .errors import (  # noqa: F401
    AssetError,
    DefinitionError,
    EventConditionsNotMetError,
    EventNotFoundError,
    SaveParseError,
    StorageError,
    StoryError,
    TraversalError,
)
from .models import (  # noqa: F401
    Character,
    Choice,
    Event,
    Frame,
    GameConfig,
    GameState,
    SaveRecord,
)
from .storage import SaveStore  # noqa: F401
