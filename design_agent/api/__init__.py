"""HTTP API for the design agent."""
