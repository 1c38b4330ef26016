"""
Session variants.

All sessions expose get_token(), invalidate(), revoke(), exchange_token()
and as_user()/as_self() over a private TokenManager:

    AnonymousSession   - client credentials, no subject
    BasicSession       - one fixed access token, never refreshed
    PersistentSession  - refresh-token pair, optionally persisted in a TokenStore
    AppAuthSession     - JWT bearer for an enterprise or app user
    CCGSession         - client credentials for an enterprise or user
"""

from eventlog_sdk.sessions.anonymous import AnonymousSession
from eventlog_sdk.sessions.app_auth import AppAuthSession
from eventlog_sdk.sessions.base import BaseSession
from eventlog_sdk.sessions.basic import BasicSession
from eventlog_sdk.sessions.ccg import CCGSession
from eventlog_sdk.sessions.persistent import PersistentSession

__all__ = [
    "BaseSession",
    "AnonymousSession",
    "BasicSession",
    "PersistentSession",
    "AppAuthSession",
    "CCGSession",
]
