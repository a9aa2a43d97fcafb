"""
Tests for the account service: hashing, tokens, directory, use-cases and the
HTTP routes.
"""
