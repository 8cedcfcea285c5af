"""Collaborator adapters for the portfolio service."""

from .content_store import ContentStore

__all__ = ["ContentStore"]
