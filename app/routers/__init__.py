"""
Routers module - API endpoint handlers organized by feature.

- google_auth: Google sign-in and Drive connection
- users: User profile
- drive: Browsing the sender's Drive files
- transfers: Transfer session lifecycle and progress
"""
