"""
asgi.py -- ASGI entry points for AuthGate.

Two independent services share this repository:
  auth_app      -- credentials, token issuance, /verify-token
  resource_app  -- example protected API delegating verification to auth_app

They never import each other; resource_app reaches auth_app over HTTP at
AUTH_SERVICE_URL.

Run with:  uvicorn asgi:auth_app --port 3001
           uvicorn asgi:resource_app --port 5000
           python main.py auth | resource
"""

from api.main import app as auth_app
from resource_api.main import app as resource_app

__all__ = ["auth_app", "resource_app"]
