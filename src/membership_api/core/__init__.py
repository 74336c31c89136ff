"""Cross-feature primitives shared by services and the HTTP layer."""
