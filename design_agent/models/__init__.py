"""Data models for conversations, events and tool results."""
