"""alertflow — alert orchestration for operational failure events."""

__version__ = "0.1.0"
