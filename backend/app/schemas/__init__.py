"""Backend-specific schemas."""
