"""API layer: the only code that talks HTTP to the inventory backend.

Key rules:

1. Only ApiClient imports requests
2. Everything above this layer catches ApiError, never requests exceptions
3. List bodies are validated into ListResponse before leaving this package
"""
