from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.sdk.resources import SERVICE_NAME, Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor

_configured = False


def setup_tracing(service_name: str, environment: str = "development") -> None:
    """Register the global tracer provider exporting spans over OTLP/gRPC."""
    global _configured
    if _configured:
        return

    resource = Resource(
        attributes={SERVICE_NAME: service_name, "deployment.environment": environment}
    )
    provider = TracerProvider(resource=resource)
    provider.add_span_processor(BatchSpanProcessor(OTLPSpanExporter()))

    trace.set_tracer_provider(provider)
    _configured = True


def get_tracer(module_name: str) -> trace.Tracer:
    return trace.get_tracer(module_name)
