"""Core application wiring: configuration, lifecycle and shared resources."""
