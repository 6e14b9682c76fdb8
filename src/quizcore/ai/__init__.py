"""Anthropic content generation collaborator and usage helpers."""
