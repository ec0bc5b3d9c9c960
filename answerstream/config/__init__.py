"""
Configuration Management
=======================

Environment-based configuration using Pydantic Settings.

Components:
- settings: Application, SSE transport and client pipeline settings
- logging: Structured logging configuration
"""
