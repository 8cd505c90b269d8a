"""Stream parameter computation and validation engine."""
