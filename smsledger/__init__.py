"""SMS ledger: maker/checker regex patterns that turn bank SMS into transactions."""

__version__ = "1.0.0"
