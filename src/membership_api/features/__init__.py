"""Feature packages: one per domain concern."""
