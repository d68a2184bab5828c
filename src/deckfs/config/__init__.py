"""Configuration commands for deckfs."""
