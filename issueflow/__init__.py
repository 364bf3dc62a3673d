"""issueflow - drives issues through validation, implementation, testing and archival."""

__version__ = "0.1.0"
