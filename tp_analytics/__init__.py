"""Activity file analytics for a training-data service.

Modules:
- config: Cache, analysis and source settings
- exceptions: Error taxonomy shared by every operation
- models: Typed domain objects
- storage: Byte-budgeted disk cache for raw activity files
- io: FIT decoding, activity sources and the fetch client
- metrics: Best-effort power, power-duration curve and aerobic decoupling
- aggregation: Cross-workout lap alignment and summaries
- cli: Command line interface
"""

__all__ = [
    "config",
    "exceptions",
    "models",
    "storage",
    "io",
    "metrics",
    "aggregation",
    "cli",
]
