"""Engine services backed by external collaborators."""
