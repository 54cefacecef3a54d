"""Personal assistant service: LLM helpers, memory store and calendar connectors."""

__version__ = "1.0.0"
