"""
Core Utilities - Shared Plumbing

Environment loading, logging setup, HTTP sessions and subprocess execution.
No pipeline knowledge lives here.
"""
