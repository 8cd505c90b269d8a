"""Engine data models."""
