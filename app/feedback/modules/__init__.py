"""
Feature modules live under this package.

Each module owns its models and service functions; the ones with pages also
own a blueprint. Platform primitives (auth, identity, audit, storage, DB
session) come from app.feedback.
"""
