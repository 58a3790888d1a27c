"""AutoSearch — paced, human-like search automation agent."""

__version__ = "0.1.0"
