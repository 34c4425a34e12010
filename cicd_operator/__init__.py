"""CI/CD operator: integration job admission scheduler and config dispatcher."""

__version__ = "1.0.0"
