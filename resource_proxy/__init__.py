"""
Resource proxy: forwards CRUD requests to a single external REST API.

Submodules cover configuration, the outbound request builder, the response
resolver, the typed client and the inbound HTTP routes.
"""

__all__ = []
