"""Role catalog, user profiles and the permission engine."""
