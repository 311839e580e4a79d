"""Playwright adapters for the task executor."""
