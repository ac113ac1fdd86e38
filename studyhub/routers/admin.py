"""
Admin Router for StudyHub.

AI provider configuration per feature (requires the manage_ai_config capability):
- GET /admin/ai-config - All feature configurations
- POST /admin/ai-config - Update one feature's configuration
- DELETE /admin/ai-config/{feature} - Reset a feature to its default
- DELETE /admin/ai-cache - Clear cached AI responses
"""

import logging

from fastapi import APIRouter, Depends

from .. import cache
from ..ai_config import ai_config, has_api_key, SUPPORTED_PROVIDERS
from ..dependencies import AuthContext, require_capability
from ..exceptions import ValidationError
from ..models import AIConfigUpdate

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/admin",
    tags=["admin"],
    responses={401: {"description": "Unauthorized"}, 403: {"description": "Forbidden"}},
)

require_ai_admin = require_capability("manage_ai_config")


@router.get("/ai-config")
async def get_ai_config(auth: AuthContext = Depends(require_ai_admin)):
    """Feature configurations plus which providers have API keys."""
    return {
        "success": True,
        "data": ai_config.get_all_configs(),
        "availableProviders": {name: has_api_key(name) for name in SUPPORTED_PROVIDERS},
    }


@router.post("/ai-config")
async def update_ai_config(body: AIConfigUpdate, auth: AuthContext = Depends(require_ai_admin)):
    """
    Update the provider/model/temperature/maxTokens used by one feature.

    Raises:
        400: Missing feature or config, missing or unsupported provider
    """
    if not body.feature or not body.config:
        raise ValidationError("Feature and configuration are required")

    updated = ai_config.update_feature_config(body.feature, body.config)
    logger.info(f"User {auth.user_id} updated AI config for {body.feature}")
    return {
        "success": True,
        "message": f'AI configuration for "{body.feature}" updated successfully',
        "data": updated.to_dict(),
    }


@router.delete("/ai-config/{feature}")
async def reset_ai_config(feature: str, auth: AuthContext = Depends(require_ai_admin)):
    restored = ai_config.reset_feature_config(feature)
    logger.info(f"User {auth.user_id} reset AI config for {feature}")
    return {
        "success": True,
        "message": f'AI configuration for "{feature}" reset to defaults',
        "data": restored.to_dict() if restored else ai_config.get_feature_config(feature).to_dict(),
    }


@router.delete("/ai-cache")
async def clear_ai_cache(auth: AuthContext = Depends(require_ai_admin)):
    """Drop every cached AI response so the next requests reach the providers."""
    removed = cache.clear_ai_cache()
    logger.info(f"User {auth.user_id} cleared {removed} cached AI responses")
    return {"success": True, "removed": removed}
