"""
API Layer
=========

FastAPI application exposing the answer stream endpoint.
"""
