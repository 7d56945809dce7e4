"""Agent loop, prompts, ports and app state."""
