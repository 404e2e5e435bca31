"""MyLocalAI: a local-first AI chat app with a streaming relay."""

__version__ = "0.1.0"
