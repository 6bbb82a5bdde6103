# postfeed/posts_api/exceptions.py
#
#
#######################################################################################################################
#
# Functions:

class TransportError(Exception):
    """Base exception for failures while fetching posts from the remote API."""
    pass

class APIConnectionError(TransportError):
    """Raised for network or connection issues (DNS, refused connections, timeouts)."""
    pass

class APIRequestError(TransportError):
    """Raised for errors in constructing the request or for a payload we cannot interpret."""
    def __init__(self, message: str, response_data: object = None):
        super().__init__(message)
        self.response_data = response_data

class APIResponseError(TransportError):
    """Raised for non-2xx responses or issues parsing the response."""
    def __init__(self, status_code: int, message: str, response_data: dict = None):
        super().__init__(f"API Error {status_code}: {message}")
        self.status_code = status_code
        self.response_data = response_data or {}

#
# End of postfeed/posts_api/exceptions.py
########################################################################################################################
