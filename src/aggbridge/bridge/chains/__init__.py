"""Chain-specific collaborator implementations."""
