"""auth/ -- Authentication and authorization package for the enrollment portal.

Layer rule: auth/ imports only stdlib, third-party libraries, core/ and
sessions/. It does NOT import from api/, registrar/, or notifications/.
api/ imports from auth/, not the other way around.
"""
