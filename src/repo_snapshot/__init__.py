"""Build an LLM-ready snapshot bundle of a project directory."""

__version__ = "0.1.0"
