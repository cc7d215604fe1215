"""Image Fusion - FastAPI REST API layer.

This package contains the FastAPI application, Pydantic request models and
the admin credential check.

Modules
-------
main
    FastAPI application with all route handlers and the ``main()`` CLI
    entry point.
models
    Pydantic models for API request validation.
auth
    HTTP Basic credential check for the admin routes.
"""
