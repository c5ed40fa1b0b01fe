"""Core player primitives (localization, completion, view tree, scheduling, events).

Kept free of FastAPI concerns so it can be reused by API routes, step renderers, and tests.
"""
