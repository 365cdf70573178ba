"""Orchestration services: streaming, sessions, tool execution."""
