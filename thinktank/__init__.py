"""ThinkTank - turn orchestration for multi-persona AI conversations."""

__version__ = "0.1.0"
