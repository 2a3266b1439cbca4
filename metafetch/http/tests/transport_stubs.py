import asyncio
from inspect import isawaitable

from metafetch.http.exceptions import NetworkError
from metafetch.http.transport import Transport, TransportResponse


def ok(data=None, status=200, headers=None):
    return TransportResponse(status, "OK", headers or {"Content-Type": "application/json"}, data)


def status(code, data=None, status_text=""):
    return TransportResponse(code, status_text, {"Content-Type": "application/json"}, data)


def network_error(message="Network Error"):
    return NetworkError({"message": message, "phase": "request"})


async def hang(request):
    await asyncio.Event().wait()


class StubTransport(Transport):
    """
    Scripted transport. Each call consumes the next outcome; the last one
    repeats. An outcome is a TransportResponse, an exception to raise, or a
    function of the request (sync or async) producing either.
    """

    def __init__(self, *outcomes, native_response_types=None):
        self.outcomes = list(outcomes) or [ok()]
        self.requests = []
        if native_response_types is not None:
            self.native_response_types = frozenset(native_response_types)

    @property
    def call_count(self):
        return len(self.requests)

    @property
    def last_request(self):
        return self.requests[-1] if self.requests else None

    async def _send(self, request):
        self.requests.append(request)
        outcome = self.outcomes.pop(0) if len(self.outcomes) > 1 else self.outcomes[0]
        if callable(outcome):
            outcome = outcome(request)
            if isawaitable(outcome):
                outcome = await outcome
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome


async def settle(times=25):
    for _ in range(times):
        await asyncio.sleep(0)


async def wait_for(predicate, timeout=1.0):
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(0.005)
