"""Domain modules built on top of the provider layer."""
