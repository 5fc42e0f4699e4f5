"""auth/ -- Accounts, roles and token sessions for AuthKeeper.

Layer rule: auth/ imports stdlib, third-party libraries and core/ only.
It does NOT import from api/. api/ imports from auth/, not the other way
around. auth/dependencies.py is the one module that knows about FastAPI.
"""
