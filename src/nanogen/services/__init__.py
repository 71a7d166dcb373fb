"""Session-scoped services: relay, storage, history, tasks and preferences."""
