"""Headless driver sync entry point.

Signs in as the given driver, keeps the order list and notification feed
(and optionally one order chat) polling, and logs what changes until
interrupted.
"""

import argparse
import asyncio
import contextlib
import logging
import os
import signal
import sys

from pydantic import ValidationError

from .core.exceptions import ConfigurationError
from .runtime import DriverClient
from .settings import Settings, get_settings
from .sync_logging import setup_logging

logger = logging.getLogger(__name__)


def init_otel_sdk(endpoint: str) -> None:
    """Initialize the OpenTelemetry SDK with an OTLP metric exporter."""
    from opentelemetry import metrics
    from opentelemetry.exporter.otlp.proto.grpc.metric_exporter import OTLPMetricExporter
    from opentelemetry.sdk.metrics import MeterProvider
    from opentelemetry.sdk.metrics.export import PeriodicExportingMetricReader
    from opentelemetry.sdk.resources import Resource

    resource = Resource.create(
        {
            "service.name": "driver-sync",
            "service.version": "0.1.0",
            "deployment.environment": os.getenv("DEPLOYMENT_ENV", "local"),
        }
    )
    metric_reader = PeriodicExportingMetricReader(
        OTLPMetricExporter(endpoint=endpoint, insecure=True),
        export_interval_millis=10_000,
    )
    metrics.set_meter_provider(MeterProvider(resource=resource, metric_readers=[metric_reader]))
    logger.info("OpenTelemetry metrics initialized (endpoint=%s)", endpoint)


def load_settings() -> Settings:
    try:
        return get_settings()
    except ValidationError as exc:
        raise ConfigurationError(
            f"Invalid configuration: {exc.error_count()} error(s)",
            details={"errors": [e["loc"] for e in exc.errors()]},
        ) from exc


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Poll orders, chat and notifications for a driver")
    parser.add_argument("--driver-id", type=int, required=True, help="Signed-in driver id")
    parser.add_argument("--chat", metavar="ORDER_ID", help="Also poll the chat of this order")
    return parser.parse_args(argv)


async def run(settings: Settings, driver_id: int, chat_order_id: str | None = None) -> None:
    stop = asyncio.Event()

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        with contextlib.suppress(NotImplementedError):
            loop.add_signal_handler(sig, stop.set)

    async with DriverClient(settings) as client:
        client.orders.subscribe(
            lambda: logger.info(
                "Orders: %s",
                ", ".join(
                    f"#{view.order.id} {view.order.driver_status}"
                    + (" (updating)" if view.busy else "")
                    for view in client.orders.views()
                )
                or "none",
            )
        )
        client.notifications.subscribe(
            lambda: logger.info("Notifications: %d", len(client.notifications.notifications))
        )
        client.alerts.subscribe(lambda error: logger.error("Alert [%s]: %s", error.kind, error))

        client.sign_in(driver_id)
        client.show_orders()
        client.show_notifications()

        async with contextlib.AsyncExitStack() as stack:
            if chat_order_id is not None:
                await stack.enter_async_context(client.open_chat(chat_order_id))
            await stop.wait()

    logger.info("Driver sync exited")


def main(argv: list[str] | None = None) -> None:
    """Main entry point for the driver sync CLI."""
    args = parse_args(argv)
    settings = load_settings()

    setup_logging(
        level=settings.log_level,
        json_output=settings.log_format == "json",
        environment=settings.environment,
    )

    otlp_endpoint = os.getenv("OTEL_EXPORTER_OTLP_ENDPOINT")
    if otlp_endpoint:
        init_otel_sdk(otlp_endpoint)

    logger.info("Starting driver sync for driver %d", args.driver_id)
    logger.info("Orders API: %s", settings.api.base_url)
    logger.info("Chat API: %s", settings.api.chat_base_url)

    try:
        asyncio.run(run(settings, args.driver_id, args.chat))
    except Exception as e:
        logger.exception("Fatal error in driver sync: %s", e)
        sys.exit(1)


if __name__ == "__main__":
    main()
