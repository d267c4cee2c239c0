# thinktank_client/thinktank_api/auth.py
#
# Token providers for the API client. The identity provider (Cognito) is external;
# the client only needs a bearer ID token per request.
#
# Imports
from abc import ABC, abstractmethod
from typing import Optional
#
# Local Imports
from .exceptions import AuthenticationError
#
#######################################################################################################################
#
# Functions:

class TokenProvider(ABC):
    """Supplies the ID token attached as `Authorization: Bearer <token>`."""

    @abstractmethod
    async def get_id_token(self) -> str:
        """Return a current ID token. Raise AuthenticationError if the user is signed out."""
        pass


class StaticTokenProvider(TokenProvider):
    """A fixed token, e.g. from config or THINKTANK_ID_TOKEN."""

    def __init__(self, token: Optional[str]):
        self._token = token.strip() if token else None

    async def get_id_token(self) -> str:
        if not self._token:
            raise AuthenticationError("Not signed in: no ID token available")
        return self._token

#
# End of thinktank_client/thinktank_api/auth.py
########################################################################################################################
