"""Configuration du tracing OpenTelemetry pour l'observabilité.

Les phases de l'orchestrateur (embedding, matching, ouverture de la génération) sont des spans;
ils ne sont exportés que si `OTLP_ENDPOINT` est configuré.
"""

from __future__ import annotations

from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor

from jeet.core.settings import Settings


def setup_tracing(settings: Settings) -> bool:
    """Configure l'export OTLP des traces si l'endpoint est configuré.

    Returns:
        bool: True si un provider a été installé.
    """
    if not settings.OTLP_ENDPOINT:
        return False

    provider = TracerProvider(resource=Resource.create({"service.name": settings.APP_NAME}))
    processor = BatchSpanProcessor(OTLPSpanExporter(endpoint=settings.OTLP_ENDPOINT, insecure=True))
    provider.add_span_processor(processor)
    trace.set_tracer_provider(provider)
    return True
