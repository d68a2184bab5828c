"""deckfs - directory storage and recent-projects index for slide decks."""

__version__ = "0.1.0"
