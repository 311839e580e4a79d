"""Benchmark orchestration and concordance for web accessibility checkers."""

__version__ = "0.1.0"
