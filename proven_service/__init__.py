"""
HTTP front end for a single proven instance.

Run with:
    uvicorn proven_service.main:app
"""
