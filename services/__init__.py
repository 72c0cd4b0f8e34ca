"""Service layer for the table reservation engine."""
