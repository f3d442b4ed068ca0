from __future__ import annotations

import argparse
import logging
import sys
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI
from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor

from .config import SERVICE_NAME, Settings, load_settings
from .logging import configure_logging
from .providers.base import Provider
from .providers.gemini import GeminiProvider
from .service import SplitService
from .storage import StateStore, open_store
from .transport.rest import build_router
from .version import get_version_info

log = logging.getLogger(__name__)


def setup_tracing(app: FastAPI, settings: Settings) -> None:
	if not settings.otlp_endpoint:
		log.info("tracing disabled (no OTLP_ENDPOINT)")
		return

	resource = Resource.create({"service.name": SERVICE_NAME})
	provider = TracerProvider(resource=resource)
	exporter = OTLPSpanExporter(endpoint=settings.otlp_endpoint, insecure=True)
	provider.add_span_processor(BatchSpanProcessor(exporter))
	trace.set_tracer_provider(provider)

	FastAPIInstrumentor.instrument_app(app, tracer_provider=provider)
	log.info("tracing enabled", extra={"otlp_endpoint": settings.otlp_endpoint})


def create_app(
	settings: Settings | None = None,
	provider: Provider | None = None,
	store: StateStore | None = None,
) -> FastAPI:
	settings = settings or load_settings()
	configure_logging(
		service=settings.service, json_mode=settings.json_logs, level=settings.log_level
	)

	if provider is None:
		provider = GeminiProvider(
			model=settings.gemini_model,
			timeout_secs=settings.provider_timeout_secs,
			cache_size=settings.assignment_cache_size,
		)
	svc = SplitService(settings, provider, store or open_store(settings.state_path))

	@asynccontextmanager
	async def lifespan(app: FastAPI):
		log.info("starting service", extra=get_version_info())
		setup_tracing(app, settings)
		ok, reason = provider.available()
		if not ok:
			log.warning("provider unavailable", extra={"provider": provider.name, "reason": reason})
		log.info("ready")
		yield

	app = FastAPI(
		title=SERVICE_NAME, version=get_version_info()["version"], lifespan=lifespan
	)
	app.state.service = svc
	app.include_router(build_router(settings, svc))
	return app


def main() -> None:
	parser = argparse.ArgumentParser(
		prog="splitly",
		description="Receipt splitting service",
	)
	parser.add_argument("--host", default="127.0.0.1", help="bind address (default: 127.0.0.1)")
	parser.add_argument("--port", type=int, default=8000, help="HTTP port (default: 8000)")
	args = parser.parse_args()

	try:
		uvicorn.run(create_app(), host=args.host, port=args.port, log_config=None)
	except Exception as e:
		log.error("Server failed to start", extra={"error": str(e)})
		sys.exit(1)


if __name__ == "__main__":
	main()
