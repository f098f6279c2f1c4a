"""
Domain layer for the user activity analytics service.

This layer contains the business logic organized by domain:
- activity: In-memory activity recording, metrics aggregation and retention sweeping

Each domain follows the structure:
- entities: Domain objects and shared state containers
- services: Business logic and use cases
"""
