# thinktank_client/thinktank_api/exceptions.py
#
#
#######################################################################################################################
#
# Functions:

class ThinkTankAPIError(Exception):
    """Base exception for thinktank_api errors."""
    pass

class APIConnectionError(ThinkTankAPIError):
    """Raised for network or connection issues (timeouts included)."""
    pass

class APIRequestError(ThinkTankAPIError):
    """Raised when the request payload is rejected (400/422) or fails local validation."""
    def __init__(self, message: str, response_data: dict = None):
        super().__init__(message)
        self.response_data = response_data or {}

class APIResponseError(ThinkTankAPIError):
    """Raised for non-2xx responses or issues parsing the response."""
    def __init__(self, status_code: int, message: str, response_data: dict = None):
        super().__init__(f"API Error {status_code}: {message}")
        self.status_code = status_code
        self.response_data = response_data or {}

class AuthenticationError(ThinkTankAPIError):
    """Raised for authentication failures or a missing ID token."""
    pass

class NotFoundError(ThinkTankAPIError):
    """Raised when a conversation or message does not exist on the server."""
    def __init__(self, message: str, resource_id: str = None):
        super().__init__(message)
        self.resource_id = resource_id

#
# End of thinktank_client/thinktank_api/exceptions.py
########################################################################################################################
