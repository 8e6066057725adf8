"""Роутер для health check"""
from fastapi import APIRouter, Request

from gateway.config import GATEWAY_VERSION, MCP_CONFIG_FILE, enabled_providers

router = APIRouter(tags=["health"])


@router.get("/health")
async def health(request: Request):
    """Health check endpoint"""
    providers = request.app.state.providers
    return {
        "status": "ok",
        "version": GATEWAY_VERSION,
        "activeSessions": len(request.app.state.registry),
        "enabledMCPs": list(enabled_providers(providers)),
        "totalMCPs": len(providers),
        "configFile": str(MCP_CONFIG_FILE),
    }
