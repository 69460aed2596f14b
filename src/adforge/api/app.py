from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from dataclasses import asdict
from functools import lru_cache
from typing import Any

from fastapi import Depends, FastAPI, File, Form, HTTPException, Request, UploadFile
from fastapi.responses import FileResponse, JSONResponse, Response
from pydantic import BaseModel, Field

from adforge.config import settings
from adforge.errors import ConfigurationError, ProviderError, ValidationRejection
from adforge.logging_config import configure_logging
from adforge.orchestrator import Orchestrator
from adforge.providers.base import Capability, GenerationRequest
from adforge.storage import Campaign, CampaignStore
from adforge.uploads import UploadCandidate, validate_upload

logger = logging.getLogger(__name__)


@lru_cache(maxsize=1)
def get_store() -> CampaignStore:
    return CampaignStore()


@lru_cache(maxsize=1)
def get_orchestrator() -> Orchestrator:
    # Built on first use and reused; a missing key surfaces as 503 on every call until fixed.
    return Orchestrator.from_settings(settings)


@asynccontextmanager
async def lifespan(app: FastAPI):
    yield
    # Only close what was actually built.
    if get_orchestrator.cache_info().currsize:
        await get_orchestrator().aclose()
        get_orchestrator.cache_clear()


configure_logging(settings.log_level)
app = FastAPI(title="adforge", lifespan=lifespan)


@app.exception_handler(ValidationRejection)
async def _validation_rejection(request: Request, exc: ValidationRejection) -> JSONResponse:
    return JSONResponse(status_code=400, content={"detail": exc.message, "reason": exc.reason.value})


@app.exception_handler(ProviderError)
async def _provider_error(request: Request, exc: ProviderError) -> JSONResponse:
    return JSONResponse(
        status_code=502,
        content={"detail": exc.message, "provider": exc.provider, "upstream_status": exc.status_code},
    )


@app.exception_handler(ConfigurationError)
async def _configuration_error(request: Request, exc: ConfigurationError) -> JSONResponse:
    logger.error("Configuration error: %s", exc.message)
    return JSONResponse(status_code=503, content={"detail": exc.message})


@app.exception_handler(ValueError)
async def _value_error(request: Request, exc: ValueError) -> JSONResponse:
    return JSONResponse(status_code=400, content={"detail": str(exc)})


class GenerateBody(BaseModel):
    prompt: str = ""
    provider: str | None = None
    options: dict[str, Any] = Field(default_factory=dict)


class AdCopyBody(BaseModel):
    product_name: str
    product_description: str
    tone: str = "friendly"
    max_length: int = 200
    count: int = 1


def _campaign_summary(camp: Campaign) -> dict[str, Any]:
    return {
        "campaign_id": camp.campaign_id,
        "name": camp.name,
        "objective": camp.objective,
        "status": camp.status,
        "created_at": camp.created_at,
        "n_ads": len(camp.ads),
    }


def _read_campaign(store: CampaignStore, campaign_id: str) -> Campaign:
    try:
        return store.read_campaign(campaign_id)
    except KeyError:
        raise HTTPException(status_code=404, detail="campaign not found")


@app.get("/health")
def health() -> dict[str, str]:
    return {"status": "ok"}


@app.post("/campaigns", status_code=201)
def create_campaign(
    name: str = Form(...),
    objective: str = Form(""),
    store: CampaignStore = Depends(get_store),
):
    camp = store.create_campaign(name=name, objective=objective)
    return _campaign_summary(camp)


@app.get("/campaigns")
def list_campaigns(store: CampaignStore = Depends(get_store)):
    return {"campaigns": [_campaign_summary(c) for c in store.list_campaigns()]}


@app.get("/campaigns/{campaign_id}")
def get_campaign(campaign_id: str, store: CampaignStore = Depends(get_store)):
    camp = _read_campaign(store, campaign_id)
    data = _campaign_summary(camp)
    data["ads"] = [asdict(a) for a in reversed(camp.ads)]
    return data


@app.patch("/campaigns/{campaign_id}/status")
def update_campaign_status(
    campaign_id: str,
    status: str = Form(...),
    store: CampaignStore = Depends(get_store),
):
    _read_campaign(store, campaign_id)
    camp = store.update_campaign_status(campaign_id, status.strip().lower())
    return _campaign_summary(camp)


@app.delete("/campaigns/{campaign_id}", status_code=204)
def delete_campaign(campaign_id: str, store: CampaignStore = Depends(get_store)):
    _read_campaign(store, campaign_id)
    store.delete_campaign(campaign_id)
    return Response(status_code=204)


@app.post("/uploads/validate")
async def validate_upload_file(file: UploadFile = File(...)):
    content = await file.read()
    candidate = UploadCandidate.from_bytes(content, file.content_type, file.filename)
    accepted = validate_upload(
        candidate,
        max_bytes=settings.max_upload_bytes,
        strict_signatures=settings.strict_signatures,
    )
    return accepted.describe()


@app.post("/campaigns/{campaign_id}/ads", status_code=201)
async def create_ad(
    campaign_id: str,
    file: UploadFile = File(...),
    product_name: str = Form(...),
    description: str = Form(...),
    ad_type: str = Form("image"),
    tone: str = Form("friendly"),
    style: str = Form("realistic"),
    size: str = Form("1024x1024"),
    duration: int | None = Form(None),
    store: CampaignStore = Depends(get_store),
    orchestrator: Orchestrator = Depends(get_orchestrator),
):
    camp = _read_campaign(store, campaign_id)
    if camp.status == "archived":
        raise HTTPException(status_code=409, detail="campaign is archived")
    ad_type = ad_type.strip().lower()
    if ad_type not in ("image", "video"):
        raise HTTPException(status_code=400, detail="ad_type must be 'image' or 'video'")

    content = await file.read()
    accepted = validate_upload(
        UploadCandidate.from_bytes(content, file.content_type, file.filename),
        max_bytes=settings.max_upload_bytes,
        strict_signatures=settings.strict_signatures,
    )

    asset = store.add_asset(
        campaign_id=campaign_id,
        kind="product",
        filename=accepted.file_name,
        content=accepted.raw_bytes,
        metadata={"content_type": accepted.mime_type, "width": accepted.width, "height": accepted.height},
    )
    ad = store.add_ad(
        campaign_id,
        store.new_ad(ad_type, product_name, description, source_asset_id=asset.asset_id),
    )

    try:
        copy = await orchestrator.generate_ad_copy(product_name=product_name, product_description=description, tone=tone)
        if ad.ad_type == "video":
            image_url = f"{settings.public_base_url.rstrip('/')}/campaigns/{campaign_id}/assets/{asset.asset_id}"
            result = await orchestrator.generate_video_ad(
                product_name=product_name,
                description=description,
                image_urls=[image_url],
                copy=copy,
                duration=duration,
            )
        else:
            result = await orchestrator.generate_image_ad(
                product_name=product_name,
                description=description,
                copy=copy,
                style=style,
                size=size,
            )
    except (ProviderError, ValueError) as exc:
        message = getattr(exc, "message", None) or str(exc)
        store.update_ad(campaign_id, ad.ad_id, status="failed", error=message)
        store.write_run_manifest(
            campaign_id,
            {"type": "ad_generate", "ad_id": ad.ad_id, "ad_type": ad.ad_type, "error": message},
        )
        raise

    meta = dict(result.usage_metadata or {})
    ad = store.update_ad(
        campaign_id,
        ad.ad_id,
        status="completed",
        copy=copy.as_dict(),
        result_url=result.payload,
        thumbnail_url=meta.get("thumbnail_url"),
        provider=result.provider_used,
        model=result.model,
    )
    store.write_run_manifest(
        campaign_id,
        {
            "type": "ad_generate",
            "ad_id": ad.ad_id,
            "ad_type": ad.ad_type,
            "copy": {"provider": copy.provider, "model": copy.model},
            "creative": {"provider": result.provider_used, "model": result.model, "metadata": meta},
        },
    )
    return asdict(ad)


@app.get("/campaigns/{campaign_id}/ads/{ad_id}")
def get_ad(campaign_id: str, ad_id: str, store: CampaignStore = Depends(get_store)):
    _read_campaign(store, campaign_id)
    try:
        return asdict(store.get_ad(campaign_id, ad_id))
    except KeyError:
        raise HTTPException(status_code=404, detail="ad not found")


@app.delete("/campaigns/{campaign_id}/ads/{ad_id}", status_code=204)
def delete_ad(campaign_id: str, ad_id: str, store: CampaignStore = Depends(get_store)):
    _read_campaign(store, campaign_id)
    try:
        store.delete_ad(campaign_id, ad_id)
    except KeyError:
        raise HTTPException(status_code=404, detail="ad not found")
    return Response(status_code=204)


@app.post("/campaigns/{campaign_id}/ads/{ad_id}/share")
def share_ad(campaign_id: str, ad_id: str, store: CampaignStore = Depends(get_store)):
    _read_campaign(store, campaign_id)
    try:
        ad = store.share_ad(campaign_id, ad_id)
    except KeyError:
        raise HTTPException(status_code=404, detail="ad not found")
    return {"share_token": ad.share_token, "share_url": f"/shared/{ad.share_token}"}


@app.get("/shared/{token}")
def get_shared_ad(token: str, store: CampaignStore = Depends(get_store)):
    try:
        ad = store.find_shared_ad(token)
    except KeyError:
        raise HTTPException(status_code=404, detail="shared ad not found")
    return ad.public_view()


@app.get("/campaigns/{campaign_id}/assets/{asset_id}")
def get_asset(campaign_id: str, asset_id: str, store: CampaignStore = Depends(get_store)):
    _read_campaign(store, campaign_id)
    try:
        asset = store.get_asset(campaign_id, asset_id)
    except KeyError:
        raise HTTPException(status_code=404, detail="asset not found")
    path = store.abs_asset_path(campaign_id, asset)
    if not path.exists():
        raise HTTPException(status_code=404, detail="asset file missing")
    return FileResponse(path, media_type=(asset.metadata or {}).get("content_type"))


@app.post("/generate/ad-copy")
async def generate_ad_copy(body: AdCopyBody, orchestrator: Orchestrator = Depends(get_orchestrator)):
    variations = await orchestrator.generate_ad_copy_variations(
        product_name=body.product_name,
        product_description=body.product_description,
        tone=body.tone,
        max_length=body.max_length,
        count=body.count,
    )
    return {
        "variations": [v.as_dict() for v in variations],
        "provider": variations[0].provider if variations else None,
    }


@app.post("/generate/{capability}")
async def generate(capability: str, body: GenerateBody, orchestrator: Orchestrator = Depends(get_orchestrator)):
    result = await orchestrator.generate(
        GenerationRequest(
            capability=Capability.parse(capability),
            prompt=body.prompt,
            options=body.options,
            provider=body.provider,
        )
    )
    return asdict(result)


@app.get("/jobs/{job_id}")
async def job_status(
    job_id: str,
    capability: str = "video",
    provider: str | None = None,
    orchestrator: Orchestrator = Depends(get_orchestrator),
):
    # Only adapters with a task API (runway) report status; pass provider=runway
    # when another adapter serves the capability.
    return await orchestrator.check_job_status(job_id, capability, provider)
