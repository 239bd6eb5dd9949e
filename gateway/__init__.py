"""AI account gateway: OpenAI-compatible proxy with per-user account rotation."""
