"""Memory storage (PostgREST client) and memory operations."""
