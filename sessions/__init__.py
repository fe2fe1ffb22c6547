"""sessions/ -- Server-side login sessions referenced by an opaque cookie.

Layer rule: sessions/ imports only stdlib. It does NOT import from api/,
auth/, registrar/, or notifications/.
"""
