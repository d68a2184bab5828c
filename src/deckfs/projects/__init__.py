"""Deck projects: data model, directory codec, validation and service."""
