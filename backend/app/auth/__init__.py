# app/auth/__init__.py
"""
Authentication core for the Intellectify API.

This package contains:
- tokens.py: access/refresh token issuance, verification, rotation and cookies
- state.py: structural validation of the OAuth ``state`` parameter
- identity.py: Google/GitHub code exchange and Google One-Tap verification
- google_keys.py: cached Google signing keys
- orchestrator.py: login, refresh and logout flows
- errors.py: the AuthError hierarchy and its HTTP status mapping
- config.py: immutable config handed to the services
"""
