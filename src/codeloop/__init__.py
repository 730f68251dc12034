"""codeloop: a coding-assistant CLI built around an agentic tool-calling loop."""

__version__ = "0.1.0"
