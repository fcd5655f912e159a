"""Conversation history, memory and knowledge graph storage for NPC agents."""

__version__ = "0.1.0"