"""HTTP adapter: shared dependencies and router composition."""
