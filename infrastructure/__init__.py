"""Persistence and transport adapters for GreenSync."""
