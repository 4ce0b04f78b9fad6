"""Tool-calling assistant for spreadsheet-style documents."""

__version__ = "0.1.0"
