"""
eventlog_sdk: OAuth2 token lifecycle and event-log consumers.

Modules:
    config      - Explicit client configuration (YAML + env expansion)
    errors      - Error classification and exception hierarchy
    logging     - Structured JSON logging with context variables
    resilience  - Retry with exponential backoff and jitter
    oauth2      - Grant strategies, token endpoint, token stores, token manager
    sessions    - Session variants (anonymous, basic, persistent, app auth, CCG)
    transport   - Authenticated API requester
    events      - User event long-poll stream and enterprise event stream

Design Principles:
    - No module-level mutable state; everything is constructor-injected
    - Async-first, single event loop
    - Collaborators (token endpoint, requester, stores, sinks) are Protocols
"""

from .types import ErrorCategory, TokenProvider

__version__ = "0.1.0"

__all__ = [
    "ErrorCategory",
    "TokenProvider",
]
