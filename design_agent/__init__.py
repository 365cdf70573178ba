"""Design agent: streaming tool-call orchestration for a sandboxed design assistant."""

__version__ = "0.1.0"
