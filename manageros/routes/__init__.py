# ==== ROUTES PACKAGE ==== #

"""
Routes package for API endpoints.

This package contains the FastAPI route modules for tolerance rule
management, exception review and people statistics.
"""
