"""
Infrastructure Module

Adapters for the remote cache store.
"""
