"""
Camel Gateway - Backend API
FastAPI application embedded in Onshape that serves files generated by the
Camel feature
"""

import asyncio
import logging
import os
from typing import List, Optional, Tuple

import httpx
import uvicorn
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, RedirectResponse

from camel_gateway.app.core.config import GatewaySettings, load_settings
from camel_gateway.app.core.gateway import Gateway
from camel_gateway.app.dependencies.auth import SignInRequired
from camel_gateway.app.routes import actions, oauth
from camel_gateway.app.routes.oauth import start_sign_in
from camel_gateway.app.services.onshape.errors import AuthError, GatewayError
from camel_gateway.app.services.onshape.oauth_manager import TokenProvider
from camel_gateway.app.shared.error_handler import parse_gateway_error

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


def create_app(
    settings: Optional[GatewaySettings] = None,
    http_client: Optional[httpx.AsyncClient] = None,
    token_provider: Optional[TokenProvider] = None,
    https_redirect: bool = True,
) -> FastAPI:
    """
    Create the FastAPI application

    Args:
        settings: Gateway settings (loaded from the environment when omitted)
        http_client: Client used for every outbound call to Onshape
        token_provider: Overrides the OAuth manager for token refreshes
        https_redirect: Redirect plain HTTP requests to EXTERNAL_HOSTNAME
    """
    settings = settings or load_settings()
    gateway = Gateway.build(settings, http_client=http_client, token_provider=token_provider)

    app = FastAPI(
        title="Camel Gateway",
        description="Onshape-embedded access to generated CAM files",
        version="1.0.0",
    )
    app.state.gateway = gateway

    app.include_router(oauth.router)
    app.include_router(actions.router)

    @app.on_event("startup")
    async def startup_event():
        """Start the session pruner"""
        app.state.pruner = asyncio.create_task(
            gateway.session_store.run_pruner(settings.session_prune_interval_seconds)
        )
        logger.info("Session pruner started")

    @app.on_event("shutdown")
    async def shutdown_event():
        pruner = getattr(app.state, "pruner", None)
        if pruner is not None:
            pruner.cancel()
        await gateway.aclose()

    @app.middleware("http")
    async def https_redirect_middleware(request: Request, call_next):
        """Redirect all non-secure traffic to HTTPS"""
        if https_redirect and settings.external_hostname and request.url.scheme != "https":
            target = f"https://{settings.external_hostname}{request.url.path}"
            if request.url.query:
                target = f"{target}?{request.url.query}"
            return RedirectResponse(url=target, status_code=307)
        return await call_next(request)

    @app.exception_handler(SignInRequired)
    async def sign_in_required_handler(request: Request, exc: SignInRequired):
        return start_sign_in(request, gateway, exc.return_to)

    @app.exception_handler(AuthError)
    async def auth_error_handler(request: Request, exc: AuthError):
        """Expired credentials on an action send the user back through sign-in"""
        logger.warning(f"Authentication failed for {request.url.path}: {exc}")
        if request.url.path.startswith("/action/"):
            return_to = request.url.path
            if request.url.query:
                return_to = f"{return_to}?{request.url.query}"
            return start_sign_in(request, gateway, return_to)
        return JSONResponse(status_code=401, content=parse_gateway_error(exc).to_dict())

    @app.exception_handler(GatewayError)
    async def gateway_error_handler(request: Request, exc: GatewayError):
        error_info = parse_gateway_error(exc)
        logger.error(f"Request {request.url.path} failed: {error_info.technical_message}")
        return JSONResponse(status_code=exc.status_code, content=error_info.to_dict())

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception):
        """Global exception handler"""
        logger.error(f"Unhandled exception: {exc}", exc_info=True)
        return JSONResponse(
            status_code=500,
            content={"detail": f"Internal server error: {str(exc)}"},
        )

    @app.get("/")
    async def root():
        """There's no front page since this application is embedded in Onshape"""
        return RedirectResponse(url=settings.main_page_redirect, status_code=302)

    @app.get("/health")
    async def health_check():
        return {
            "status": "healthy",
            "service": "camel-gateway",
            "version": "1.0.0",
            "sessions": len(gateway.session_store),
            "oauth_configured": settings.has_client_credentials,
        }

    return app


def tls_files(settings: GatewaySettings) -> Optional[Tuple[str, str]]:
    """(key file, cert file) when both exist under the certs directory"""
    key_file = os.path.join(settings.certs_dir, "privkey.pem")
    cert_file = os.path.join(settings.certs_dir, "cert.pem")
    if os.path.exists(key_file) and os.path.exists(cert_file):
        return key_file, cert_file
    return None


def build_servers(settings: GatewaySettings) -> List[uvicorn.Server]:
    """
    Build the uvicorn servers for one gateway process

    With TLS material both ports are served by the same app: HTTPS carries
    the traffic and plain HTTP only redirects to it. Without TLS a single
    plain HTTP server runs, redirecting only when a TLS proxy in front of it
    forwards X-Forwarded-Proto.
    """
    tls = tls_files(settings)
    if tls is None:
        logger.warning(f"Cannot read TLS certificates from {settings.certs_dir}, serving plain HTTP")
        app = create_app(settings, https_redirect=settings.behind_tls_proxy)
        config = uvicorn.Config(
            app,
            host=settings.host,
            port=settings.http_port,
            proxy_headers=settings.behind_tls_proxy,
            forwarded_allow_ips="*" if settings.behind_tls_proxy else None,
            log_level="info",
        )
        return [uvicorn.Server(config)]

    if not settings.external_hostname:
        logger.warning("EXTERNAL_HOSTNAME not set, plain HTTP requests will not be redirected")
    key_file, cert_file = tls
    app = create_app(settings)
    https_config = uvicorn.Config(
        app,
        host=settings.host,
        port=settings.https_port,
        ssl_keyfile=key_file,
        ssl_certfile=cert_file,
        log_level="info",
    )
    # the HTTPS server owns startup and shutdown of the shared app
    http_config = uvicorn.Config(
        app,
        host=settings.host,
        port=settings.http_port,
        lifespan="off",
        log_level="info",
    )
    return [uvicorn.Server(https_config), uvicorn.Server(http_config)]


async def serve(servers: List[uvicorn.Server]) -> None:
    """Run servers together; when one stops the others are asked to stop too"""
    tasks = [asyncio.ensure_future(server.serve()) for server in servers]
    await asyncio.wait(tasks, return_when=asyncio.FIRST_COMPLETED)
    for server in servers:
        server.should_exit = True
    await asyncio.gather(*tasks)


def main():
    """Main entry point for running the server"""
    settings = load_settings()
    servers = build_servers(settings)
    for server in servers:
        scheme = "https" if server.config.ssl_certfile else "http"
        logger.info(f"Starting Camel Gateway on {scheme}://{settings.host}:{server.config.port}")
    asyncio.run(serve(servers))


if __name__ == "__main__":
    main()
