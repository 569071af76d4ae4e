"""todolist HTTP service."""
