"""toolhub: tool dispatch, chaining, schema export and allowlisted data reads for agents."""

__version__ = "0.1.0"
