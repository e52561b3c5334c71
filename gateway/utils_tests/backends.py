import inspect

import httpx


class FakeBackends:
    """
    Dispatches MockTransport traffic to per-host handlers and records every
    request that reached a backend. Hosts without a handler refuse the
    connection, like a port nobody listens on.
    """

    def __init__(self):
        self.handlers = {}
        self.requests: list[httpx.Request] = []

    def on(self, host: str, handler) -> None:
        self.handlers[host] = handler

    async def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        handler = self.handlers.get(request.url.host)
        if handler is None:
            raise httpx.ConnectError("[Errno 111] Connection refused", request=request)
        response = handler(request)
        if inspect.isawaitable(response):
            response = await response
        return as_unread(response)

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self)


def as_unread(response: httpx.Response) -> httpx.Response:
    """
    ``httpx.Response(content=...)`` is read on construction; a network
    transport hands the body over unread. Rebuild so raw streaming works.
    """
    if not response.is_stream_consumed:
        return response
    return httpx.Response(
        response.status_code,
        headers=response.headers.raw,
        stream=httpx.ByteStream(response.content),
    )
