"""Claude settings management and project installation."""
