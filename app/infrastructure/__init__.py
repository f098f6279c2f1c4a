"""
Infrastructure layer for external services and data access.

This layer contains:
- users: Process-local user directory standing in for the external user store
"""
