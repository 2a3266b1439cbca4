class HttpError(Exception):
    """
    Base error for a failed request.

    Built from an error-data dict so that every layer (transport, controller,
    interceptors) can attach whatever it knows: ``message``, ``response`` (the
    envelope, if the server answered), ``config`` (the outgoing request),
    ``phase``, ``code``, ``request`` and ``original_error``.
    """

    default_message = "HTTP Error"
    default_code = None

    def __init__(self, error_data=None):
        error_data = error_data or {}
        self.message = error_data.get("message", self.default_message)
        self.response = error_data.get("response")
        self.config = error_data.get("config")
        self.phase = error_data.get("phase", "unknown")
        self.code = error_data.get("code", self.default_code)
        self.request = error_data.get("request")
        self.original_error = error_data.get("original_error")
        super().__init__(self.message)

    @property
    def status(self):
        return getattr(self.response, "status", None)

    @property
    def data(self):
        return getattr(self.response, "data", None)

class RequestCancelledError(HttpError):
    default_message = "Request was cancelled"
    default_code = "ERR_CANCELED"

class RequestTimeoutError(HttpError):
    default_message = "Request timed out"
    default_code = "ETIMEDOUT"

class NetworkError(HttpError):
    default_message = "Network Error"
    default_code = "ERR_NETWORK"

class ClientError(HttpError):
    """4xx response."""
    default_code = "ERR_BAD_REQUEST"

class ServerError(HttpError):
    """5xx response."""
    default_code = "ERR_BAD_RESPONSE"

class InterceptorError(HttpError):
    default_message = "Interceptor failed"
    default_code = "ERR_INTERCEPTOR"


def error_for_status(response, config=None) -> HttpError:
    """Build the error a non-2xx envelope stands for."""
    status = response.status
    error_data = {
        "message": f"HTTP {status}: {response.status_text}".rstrip(": "),
        "response": response,
        "config": config,
        "request": config,
        "phase": "http_status_error",
    }
    if 400 <= status < 500:
        return ClientError(error_data)
    if status >= 500:
        return ServerError(error_data)
    error_data["code"] = "ERR_BAD_STATUS"
    return HttpError(error_data)
