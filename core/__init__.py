"""Core module - configuration, errors and observability.

Everything the reconciliation components share lives here: the settings
model loaded from the environment, the error hierarchy surfaced to callers,
and structured logging. Domain packages (roster_registry, entity_matcher,
split_engine, ...) depend on core, never the other way round.
"""

__version__ = "1.0.0"
