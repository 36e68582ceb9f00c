"""Data models for events, snapshots, sessions and the HTTP API."""
