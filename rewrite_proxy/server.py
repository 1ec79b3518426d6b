from typing import Optional

import httpx
from fastapi import FastAPI
from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor
from prometheus_client import Info
from prometheus_fastapi_instrumentator import Instrumentator

from rewrite_proxy.proxy.settings import ProxySettings, load_settings
from rewrite_proxy.routes import router
from rewrite_proxy.vars import OTLP_ENDPOINT, OTLP_HEADERS, SERVICE_NAME


def create_app(
    settings: ProxySettings,
    transport: Optional[httpx.AsyncBaseTransport] = None,
    instrument: bool = False,
) -> FastAPI:
    """
    Build the proxy application around an immutable settings object.

    ``transport`` replaces the network transport of the upstream HTTP client,
    which tests use to stand in for upstream servers.
    """
    app = FastAPI()
    app.state.settings = settings
    app.state.transport = transport

    if instrument:
        # /metrics must be registered before the catch-all proxy route
        Instrumentator().instrument(app).expose(app)

    app.include_router(router)
    return app


def configure_tracing(app: FastAPI) -> None:
    trace.set_tracer_provider(
        TracerProvider(resource=Resource.create({"service.name": SERVICE_NAME}))
    )
    tracer_provider = trace.get_tracer_provider()
    if OTLP_ENDPOINT:
        otlp_exporter = OTLPSpanExporter(
            endpoint=OTLP_ENDPOINT,
            headers=(
                [tuple(h.split("=", 1)) for h in OTLP_HEADERS.split(",") if "=" in h]
                or None
            ),
        )
        tracer_provider.add_span_processor(BatchSpanProcessor(otlp_exporter))

    FastAPIInstrumentor.instrument_app(app, excluded_urls="metrics")


app = create_app(load_settings(), instrument=True)
configure_tracing(app)

# Add app_name to the metrics
app_info = Info("fastapi_app_info", "Application Info")
app_info.info({"app_name": SERVICE_NAME})
