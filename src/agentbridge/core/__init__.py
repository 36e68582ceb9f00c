"""Core orchestration: sessions, stream aggregation, update scheduling and tasks."""
