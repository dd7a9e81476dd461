"""Business-hours calendar and SLA tracking."""
