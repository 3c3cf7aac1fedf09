"""Vocabulary Enrichment Gateway — FastAPI application entry point.

Serves the enrichment service to the vocabulary UI and the background
word-enhancement job: API key pool management, auto-meaning with
cancellation, example sentences, IPA and plain translation.
"""

import json
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, Request
from fastapi.responses import JSONResponse

from vocab_gateway.config.settings import get_settings
from vocab_gateway.credentials.factory import get_credential_store
from vocab_gateway.credentials.pool import CredentialPool
from vocab_gateway.enrichment.service import EnrichmentService
from vocab_gateway.errors import EnrichmentError, InvalidPayload
from vocab_gateway.logging.audit import (
    generate_request_id,
    get_audit_logger,
    request_id_var,
    setup_logging,
)
from vocab_gateway.providers.registry import close_all_providers, get_provider

VERSION = "0.3.0"

_service: EnrichmentService | None = None


async def get_service() -> EnrichmentService:
    """The process-wide service, built and loaded on first use."""
    global _service
    if _service is None:
        settings = get_settings()
        service = EnrichmentService(
            pool=CredentialPool(get_credential_store(), settings),
            provider=get_provider(settings.ai_provider),
            settings=settings,
        )
        await service.load()
        if _service is None:
            _service = service
    return _service


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown lifecycle hooks."""
    global _service
    setup_logging()
    service = await get_service()
    get_audit_logger().info(
        "Gateway started",
        extra={"audit_data": {"has_key": service.get_credential_status()["hasKey"]}},
    )
    yield
    await service.close()
    await close_all_providers()
    _service = None
    get_audit_logger().info("Gateway stopped")


app = FastAPI(
    title="Vocabulary Enrichment Gateway",
    description="AI enrichment of vocabulary words over a pool of API keys",
    version=VERSION,
    lifespan=lifespan,
)


@app.middleware("http")
async def request_id_middleware(request: Request, call_next):
    rid = generate_request_id()
    token = request_id_var.set(rid)
    try:
        response = await call_next(request)
    finally:
        request_id_var.reset(token)
    response.headers["X-Request-Id"] = rid
    return response


@app.exception_handler(EnrichmentError)
async def enrichment_error_handler(request: Request, exc: EnrichmentError):
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.code, "detail": exc.message},
    )


async def _read_json(request: Request):
    try:
        return await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError):
        raise InvalidPayload("Request body must be valid JSON")


@app.get("/health")
async def health():
    return {"status": "healthy", "version": VERSION}


# --- API keys ---

@app.get("/v1/credentials/status")
async def credential_status(service: EnrichmentService = Depends(get_service)):
    return service.get_credential_status()


@app.get("/v1/credentials")
async def list_credentials(service: EnrichmentService = Depends(get_service)):
    return service.list_credentials()


@app.get("/v1/credentials/health")
async def credential_health(service: EnrichmentService = Depends(get_service)):
    return service.get_credential_health()


@app.post("/v1/credentials")
async def add_credential(request: Request, service: EnrichmentService = Depends(get_service)):
    return {"ok": await service.add_credential(await _read_json(request))}


# Declared before the {credential_id} route so "active" is not taken as an id
@app.delete("/v1/credentials/active")
async def clear_active_credential(service: EnrichmentService = Depends(get_service)):
    return {"ok": await service.clear_active_credential()}


@app.delete("/v1/credentials/{credential_id}")
async def delete_credential(credential_id: str, service: EnrichmentService = Depends(get_service)):
    return {"ok": await service.delete_credential(credential_id)}


@app.put("/v1/credentials/{credential_id}/active")
async def set_active_credential(credential_id: str, service: EnrichmentService = Depends(get_service)):
    return {"ok": await service.set_active_credential(credential_id)}


@app.post("/v1/credentials/{credential_id}/reset-errors")
async def reset_credential_errors(credential_id: str, service: EnrichmentService = Depends(get_service)):
    return {"ok": await service.reset_credential_errors(credential_id)}


@app.patch("/v1/credentials/{credential_id}")
async def rename_credential(
    credential_id: str, request: Request, service: EnrichmentService = Depends(get_service)
):
    body = await _read_json(request)
    name = body.get("name") if isinstance(body, dict) else None
    return {"ok": await service.rename_credential(credential_id, name)}


# --- settings ---

@app.get("/v1/settings/concurrency")
async def get_concurrency(service: EnrichmentService = Depends(get_service)):
    return service.get_concurrency()


@app.put("/v1/settings/concurrency")
async def set_concurrency(request: Request, service: EnrichmentService = Depends(get_service)):
    body = await _read_json(request)
    value = body.get("concurrency") if isinstance(body, dict) else body
    return await service.set_concurrency(value)


# --- enrichment ---

@app.post("/v1/enrich/auto-meaning")
async def auto_meaning(request: Request, service: EnrichmentService = Depends(get_service)):
    return await service.request_auto_meaning(await _read_json(request))


@app.post("/v1/enrich/auto-meaning/{request_id}/cancel")
async def cancel_auto_meaning(request_id: str, service: EnrichmentService = Depends(get_service)):
    return {"cancelled": service.cancel_auto_meaning(request_id)}


@app.post("/v1/enrich/example-sentence")
async def example_sentence(request: Request, service: EnrichmentService = Depends(get_service)):
    return {"sentence": await service.request_example_sentence(await _read_json(request))}


@app.post("/v1/enrich/ipa")
async def ipa(request: Request, service: EnrichmentService = Depends(get_service)):
    return {"ipa": await service.request_ipa(await _read_json(request))}


@app.post("/v1/translate")
async def translate(request: Request, service: EnrichmentService = Depends(get_service)):
    return {"text": await service.request_plain_translation(await _read_json(request))}
