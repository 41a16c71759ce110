"""Clinic administration backend: record store, repositories and login guard."""
