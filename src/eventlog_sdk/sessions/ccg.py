"""Client credentials grant session for an enterprise or user subject."""

from eventlog_sdk.config.config import ClientConfig
from eventlog_sdk.errors.exceptions import InvalidConfigurationError
from eventlog_sdk.oauth2.endpoint import TokenEndpoint
from eventlog_sdk.oauth2.grants import ClientCredentialsGrant, SubjectType
from eventlog_sdk.sessions.base import BaseSession


class CCGSession(BaseSession):
    """
    Session using the client credentials grant.

    No refresh token is issued; an expiring token is re-exchanged from the
    client secret. The subject defaults to the configured enterprise.
    """

    def __init__(
        self,
        config: ClientConfig,
        endpoint: TokenEndpoint | None = None,
        subject_type: str = SubjectType.ENTERPRISE,
        subject_id: str | None = None,
        **kwargs,
    ):
        config.require_client_credentials()
        if subject_id is None and subject_type == SubjectType.ENTERPRISE:
            subject_id = config.enterprise_id
        if not subject_id:
            raise InvalidConfigurationError(
                f"Client credentials session requires a {subject_type} id"
            )
        self.subject_type = subject_type
        self.subject_id = str(subject_id)
        super().__init__(
            config,
            grant=ClientCredentialsGrant(subject_type, self.subject_id),
            endpoint=endpoint,
            **kwargs,
        )

    def __repr__(self) -> str:
        return f"CCGSession(subject={self.subject_type}:{self.subject_id}, as_user={self.as_user_id!r})"


__all__ = ["CCGSession"]
