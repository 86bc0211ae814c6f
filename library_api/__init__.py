"""
FastAPI RESTful API for the library catalogue.

This package provides a REST API for:
- User registration and login with signed session tokens
- Book catalogue browsing and administration
- Per-book reviews owned by the users who wrote them
- Rate limiting and role-based access control
"""
