"""Hearth runtime components shared by the API workers."""
