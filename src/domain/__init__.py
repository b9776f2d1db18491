"""
Domain layer for the intake submission gateway.

This layer contains:
- Data models (type-safe structures)
- Error kinds (one per terminal response)
- Business logic (the submission pipeline)
"""
