"""LLM gateway, prompts and response schemas."""
