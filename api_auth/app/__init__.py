"""
Digital menu authentication API.

Google OAuth 2.0 login with JWT session cookies shared by the admin
dashboard and the public site.
"""

__version__ = "1.0.0"
