"""auth/ -- Authentication package for Queso.

Leaf-first: passwords, tokens, oauth -> service -> dependencies.

Layer rule: auth/ imports stdlib, third-party libraries, core/ and users/.
It does NOT import from api/. api/ imports from auth/, not the other way around.
"""
