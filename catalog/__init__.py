"""catalog/ -- Categories, listings and the listing query builder for Bech-Do.

Layer rule: catalog/ imports core/ and auth/ (models, plus the users table
for owner expansion) + third-party libraries. It does NOT import from api/.
"""
