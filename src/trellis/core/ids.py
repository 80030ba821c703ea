"""Prefixed ULID identifiers for todos and relationships."""

from __future__ import annotations

from ulid import ULID


def generate_relationship_id() -> str:
    """Generate a new relationship ID with the rel_ prefix."""
    return f"rel_{ULID()}"


def generate_todo_id() -> str:
    """Generate a new todo ID with the todo_ prefix."""
    return f"todo_{ULID()}"
