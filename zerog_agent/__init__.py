"""zerog-agent: tool-calling coding agent with human approval."""

__version__ = "0.3.0"
