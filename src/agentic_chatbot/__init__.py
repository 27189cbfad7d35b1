"""Agentic chatbot: LLM front-end for MCP database tools."""

__version__ = "0.1.0"
