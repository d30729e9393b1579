"""Splitter E2E Test Server.

Serves the splitter API and the payment-gated demo resource over HTTP.
Configuration comes from the environment (see SplitterSettings.from_env).
"""

import logging
import os
import sys
import threading

from dotenv import load_dotenv

load_dotenv()


def main() -> None:
    """Start the splitter server."""
    import uvicorn
    from starlette.requests import Request
    from starlette.responses import JSONResponse
    from starlette.routing import Route

    from x402_splitter.config import SplitterSettings
    from x402_splitter.http import create_app
    from x402_splitter.services import build_services

    try:
        settings = SplitterSettings.from_env(dotenv=False)
    except ValueError as e:
        print(f"Invalid configuration: {e}")
        sys.exit(1)

    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    app = create_app(build_services(settings))

    async def close(request: Request) -> JSONResponse:
        response = JSONResponse({"message": "Server shutting down gracefully"})

        def shutdown():
            import time

            time.sleep(0.1)
            os._exit(0)

        threading.Thread(target=shutdown, daemon=True).start()
        return response

    app.router.routes.append(Route("/close", close, methods=["POST"]))

    print(f"Server listening on port {settings.port}")
    print(f"Network: {settings.network}")
    print(f"Program: {settings.program_id} ({settings.settlement_mode.value})")
    print(f"Health: http://localhost:{settings.port}/health")

    uvicorn.run(app, host=settings.host, port=settings.port, log_level="warning")


if __name__ == "__main__":
    main()
