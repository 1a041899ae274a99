"""Domain and persistence models for the Realm Graph engine."""
