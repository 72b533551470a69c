"""Provider adapters, the deterministic mock provider and the fallback resolver."""
