"""
User activity analytics domain.

This domain handles:
- Recording login attempts and user activity events
- Deriving activity trends, retention, security and behavior metrics
- Periodic eviction of stale activity state
"""
