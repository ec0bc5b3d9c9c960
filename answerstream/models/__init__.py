"""
Data Models
===========

Pydantic models shared by the server and the client:
- events: Tagged union of stream events and the Source model
- schemas: HTTP request/response models
"""
