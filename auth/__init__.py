"""auth/ -- Local identity, password and API key handling for ChatLink.

Layer rule: auth/ imports only stdlib, third-party libraries and core/.
It does NOT import from api/ or chat/.
api/ and chat/ import from auth/, not the other way around.
"""
