"""Concrete collaborator implementations."""
