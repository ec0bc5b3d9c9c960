"""
Core Components
===============

- producer: The answer producer protocol and the scripted development producer
"""
