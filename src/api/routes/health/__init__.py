"""Health, status e descoberta."""
