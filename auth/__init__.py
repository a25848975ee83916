"""auth/ -- Credential storage, token lifecycle and password reset for AuthGate.

Layer rule: auth/ imports only stdlib, third-party libraries, and core/.
It does NOT import from api/ or resource_api/.
api/ and resource_api/ import from auth/, not the other way around.
"""
