"""Brick-Works - FastAPI REST API layer.

This package contains the FastAPI application and the Pydantic
request/response models for driving conversion sessions over HTTP.

Modules
-------
main
    FastAPI application with all route handlers and the ``main()`` CLI
    entry point.
models
    Pydantic models for API request and response validation.
"""
