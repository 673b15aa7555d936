"""HTTP read API over the quote store."""

from quote_keeper.api.app import create_app

__all__ = ["create_app"]
