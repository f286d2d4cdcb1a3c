"""Completion backends, dispatch and prompt assembly."""
