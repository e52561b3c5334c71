from typing import Optional

from starlette.datastructures import Headers, MutableHeaders
from starlette.responses import Response
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from gateway.cors.policy import CorsPolicy
from gateway.observability import GatewayObserver


class CorsPolicyMiddleware:
    """
    Applies a ``CorsPolicy`` to every HTTP exchange.

    ``OPTIONS`` requests are answered here and never reach the routes. All
    other responses, error bodies included, get the decision's headers; any
    Access-Control-* headers set further down (e.g. by a backend) are replaced
    so the browser only ever sees the gateway's policy.
    """

    def __init__(
        self,
        app: ASGIApp,
        policy: CorsPolicy,
        observer: Optional[GatewayObserver] = None,
    ) -> None:
        self.app = app
        self.policy = policy
        self.observer = observer or GatewayObserver()

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        method = scope["method"]
        path = scope["path"]
        origin = Headers(scope=scope).get("origin")
        decision = self.policy.evaluate(origin)
        if origin and not decision.allowed:
            self.observer.cors_rejected(origin, method, path)
        elif not decision.listed:
            self.observer.cors_permitted_unlisted(origin, method, path)

        if method == "OPTIONS":
            response = Response(
                status_code=204, headers=self.policy.headers(decision, preflight=True)
            )
            await response(scope, receive, send)
            return

        cors_headers = self.policy.headers(decision)

        async def send_with_cors(message: Message) -> None:
            if message["type"] == "http.response.start":
                headers = MutableHeaders(scope=message)
                for name in set(headers.keys()):
                    if name.startswith("access-control-"):
                        del headers[name]
                for name, value in cors_headers.items():
                    if name == "Vary":
                        headers.add_vary_header(value)
                    else:
                        headers[name] = value
            await send(message)

        await self.app(scope, receive, send_with_cors)
