"""
answerstream
============

Streaming transport and reconstruction pipeline for AI-generated answers.

This package provides:
- Server-Sent Events emission with backpressure, keep-alive and a size ceiling
- FastAPI endpoints that stream answers from a pluggable producer
- Client-side byte ingestion, SSE frame parsing and event accumulation
- Per-answer cancellation, reconnection and character-paced rendering
"""

__version__ = "1.0.0"
__author__ = "answerstream team"
