"""Response-time attribution and analytics."""
