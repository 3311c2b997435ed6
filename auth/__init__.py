"""auth/ -- Authentication and authorization package for Bech-Do.

Layer rule: auth/ imports only core/ + third-party libraries.
It does NOT import from api/ or catalog/.
api/ and catalog/ import from auth/, not the other way around.
"""
