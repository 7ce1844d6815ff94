"""Agent query engine - scheduling, caching and retry layer for agent queries."""

__version__ = "0.1.0"
