"""API routers."""

from foragelens.api.routers import chat_proxy, sessions, usage

__all__ = ["chat_proxy", "sessions", "usage"]
