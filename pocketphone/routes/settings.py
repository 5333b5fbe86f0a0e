"""Health check, settings, and connection check endpoints."""

from fastapi import APIRouter, HTTPException

from pocketphone import storage
from pocketphone.errors import GatewayError
from pocketphone.models import ApiPreset
from pocketphone.pipeline import gateway_for

from .models import CheckConnectionBody

router = APIRouter()


@router.get("/health")
async def health():
    """Health check."""
    return {"status": "ok"}


@router.post("/check-connection")
async def check_connection(body: CheckConnectionBody):
    """List the models an endpoint offers. ok=False if it cannot be reached."""
    preset = ApiPreset(
        base_url=body.base_url,
        api_key=body.api_key,
        completions_path=body.completions_path,
    )
    try:
        models = await gateway_for(preset, timeout=5).list_models()
    except GatewayError as e:
        return {"ok": False, "models": [], "error": str(e)}
    return {"ok": True, "models": models}


@router.get("/settings")
async def get_settings():
    """Get global app settings (API presets, active preset, pacing)."""
    return storage.get_config()


@router.patch("/settings")
async def update_settings(body: dict):
    """Update global app settings (partial merge)."""
    try:
        return storage.update_config(body)
    except ValueError as e:
        raise HTTPException(400, str(e))
