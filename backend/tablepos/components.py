# Overview: Per-app component registry (rate limiter, token store, adapters, workers).

"""
Components

In-process shared state (rate-limit windows, one-time tokens) and the
adapters the services depend on are built once per Flask app and stored on
app.extensions["tablepos"]. Nothing here is a module-level singleton: two
apps (e.g. two tests) never share a limiter or a token store.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta

from flask import current_app

from .services.catalog_service import ProductCatalog, SettingsStore
from .services.notification_service import NotificationGateway
from .services.transition_policy import StatusTransitionPolicy, transition_policy_for
from .services.rate_limit_service import SlidingWindowRateLimiter
from .services.token_service import OneTimeTokenStore
from .services.workers import NotificationDispatcher, PeriodicWorker


EXTENSION_KEY = "tablepos"

# Longest window any limiter key uses; idle keys older than this are pruned
RATE_LIMIT_MAX_WINDOW = timedelta(hours=1)


@dataclass
class Components:
    rate_limiter: SlidingWindowRateLimiter
    token_store: OneTimeTokenStore
    catalog: ProductCatalog
    settings: SettingsStore
    notifications: NotificationGateway
    dispatcher: NotificationDispatcher
    transition_policy: StatusTransitionPolicy
    token_sweeper: PeriodicWorker

    def start_workers(self) -> None:
        self.dispatcher.start()
        self.token_sweeper.start()

    def stop_workers(self, timeout: float = 5.0) -> None:
        self.token_sweeper.stop(timeout)
        self.dispatcher.stop(timeout)


def sweep_expired_state() -> int:
    """Reclaim expired tokens and idle limiter keys of the current app."""
    components = get_components()
    removed = components.token_store.sweep()
    components.rate_limiter.prune(RATE_LIMIT_MAX_WINDOW)
    if removed:
        current_app.logger.info("Swept %d expired one-time tokens", removed)
    return removed


def build_components(app) -> Components:
    return Components(
        rate_limiter=SlidingWindowRateLimiter(),
        token_store=OneTimeTokenStore(ttl=timedelta(seconds=app.config["CSRF_TOKEN_TTL_SECONDS"])),
        catalog=ProductCatalog(),
        settings=SettingsStore(),
        notifications=NotificationGateway(),
        dispatcher=NotificationDispatcher(app),
        transition_policy=transition_policy_for(app.config.get("ORDER_TRANSITION_POLICY")),
        token_sweeper=PeriodicWorker(
            "token-sweeper",
            app.config["TOKEN_SWEEP_INTERVAL_SECONDS"],
            sweep_expired_state,
            app,
        ),
    )


def get_components(app=None) -> Components:
    app = app or current_app
    return app.extensions[EXTENSION_KEY]


def shutdown_workers(app, timeout: float = 5.0) -> None:
    components = app.extensions.get(EXTENSION_KEY)
    if components is not None:
        components.stop_workers(timeout)
