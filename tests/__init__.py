"""
Test Suite
==========

Test suite matching the answerstream/ package structure.

Test Categories:
- unit: Unit tests for individual components
- integration: Client and HTTP surface tests across components
- e2e: Endpoint bytes fed through the streaming client
"""
