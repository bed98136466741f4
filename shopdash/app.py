"""Pyramid wiring for the dashboard service."""
import logging

from pyramid.config import Configurator
from sqlalchemy import MetaData, create_engine
from sqlalchemy.orm import Session

from . import DashboardAuthService
from .admin_api import AdminAPIService
from .config import DashboardConfig
from .cookieserializer import get_default_session_serializer
from .identity import IdentityResolver
from .session import SessionStore
from .storage.sqlalchemy_shim import SqlalchemyAdminTokenStore, admin_token_table
from .storefront import StorefrontAPIService
from .verify import SignatureVerifier
from .web.pyramid_shim import PyramidWebShim

logger = logging.getLogger(__name__)


# route name, pattern, request method, service method
ROUTES = (
    ("install", "/install", "GET", "install"),
    ("auth_callback", "/auth/callback", "GET", "oauth_callback"),
    ("oauth_callback", "/oauth/callback", "GET", "oauth_callback"),
    ("auth_login", "/auth/login", "POST", "login"),
    ("auth_logout", "/auth/logout", "POST", "logout"),
    ("auth_session", "/auth/session", "GET", "session_status"),
    ("auth_renew", "/auth/renew", "POST", "renew"),
    ("customer_orders", "/customer/orders", "GET", "orders"),
    ("proxy_customer", "/proxy/customer", "GET", "proxy_customer"),
)


def get_admin_token_store(request):
    """One ORM session per request, committed once the response is done."""
    engine = request.registry.shopdash_engine
    if engine is None:
        return None
    db = Session(engine)

    def finish(request):
        try:
            if request.exception is None:
                db.commit()
            else:
                db.rollback()
        finally:
            db.close()

    request.add_finished_callback(finish)
    return SqlalchemyAdminTokenStore(db, request.registry.shopdash_admin_tokens)


def get_auth_service(request):
    config = request.registry.shopdash_config
    web_shim = PyramidWebShim(request)
    return DashboardAuthService(
        config=config,
        web_shim=web_shim,
        session_store=SessionStore(
            web_shim=web_shim,
            serializer=request.registry.shopdash_serializer,
            cookie_name=config.session_cookie_name,
            max_age=config.session_max_age,
            secure=config.production,
        ),
        resolver=IdentityResolver(
            config=config,
            storefront_api=StorefrontAPIService(config),
            admin_api=AdminAPIService(config),
            admin_token_store=get_admin_token_store(request),
        ),
        verifier=SignatureVerifier(config.api_secret),
    )


def make_service_view(method_name):
    def view(request):
        return getattr(request.auth_service, method_name)()

    view.__name__ = method_name
    return view


def healthz(request):
    return {"status": "ok"}


def make_app(dashboard_config, engine=None):
    """Build the WSGI app from an already loaded `DashboardConfig`."""
    dashboard_config.check()
    if engine is None and dashboard_config.database_url:
        engine = create_engine(dashboard_config.database_url)

    with Configurator() as config:
        registry = config.registry
        registry.shopdash_config = dashboard_config
        registry.shopdash_serializer = get_default_session_serializer(
            dashboard_config.get_session_secret()
        )
        registry.shopdash_engine = engine
        registry.shopdash_admin_tokens = None
        if engine is not None:
            metadata = MetaData()
            registry.shopdash_admin_tokens = admin_token_table(metadata)
            metadata.create_all(engine)

        config.add_request_method(get_auth_service, "auth_service", reify=True)
        config.add_route("healthz", "/healthz")
        config.add_view(healthz, route_name="healthz", renderer="json")
        for route_name, pattern, request_method, method_name in ROUTES:
            config.add_route(route_name, pattern, request_method=request_method)
            config.add_view(make_service_view(method_name), route_name=route_name)
        app = config.make_wsgi_app()
    logger.info("shopdash app ready, environment=%s", dashboard_config.environment)
    return app


def main(global_config, **settings):
    """PasteDeploy entry point."""
    return make_app(DashboardConfig.from_settings(settings))
