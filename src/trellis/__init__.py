"""Trellis: a personal task tracker with a typed dependency graph."""

__version__ = "0.1.0"
