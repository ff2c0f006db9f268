"""Browser-facing page shell and per-connection view sessions."""

from .page import render_view_html
from .session import ViewSession, parse_client_message

__all__ = ["ViewSession", "parse_client_message", "render_view_html"]
