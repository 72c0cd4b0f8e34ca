"""Core utilities: configuration, logging, booking rules and time arithmetic."""
