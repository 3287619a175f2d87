"""notecore - Markdown note codec and open-note lifecycle."""

__version__ = "0.1.0"
