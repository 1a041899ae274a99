"""Service layer for the Realm Graph engine."""
