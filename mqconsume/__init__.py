"""Push-style message queue consumer core: queue allocation, statistics, options and consume dispatch."""

__version__ = "0.1.0"

__all__ = ["errors", "strategy", "statistics", "options", "consume_helpers", "push_consumer"]