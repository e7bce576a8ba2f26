from chat_lifecycle.auth.base import Session, SessionProvider, StaticSessionProvider, resolve_access_token

__all__ = ["Session", "SessionProvider", "StaticSessionProvider", "resolve_access_token"]
