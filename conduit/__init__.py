"""Agent output normalization and message accumulation."""

__version__ = "0.1.0"
