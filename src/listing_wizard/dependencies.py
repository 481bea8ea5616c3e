"""
FastAPI dependency providers
Services are process-wide singletons so per-store locks are shared across requests.
"""
import logging
from functools import lru_cache
from typing import Optional

from fastapi import Header, HTTPException, status

from .config import config
from .services.ai_provider import LiteLLMProvider
from .services.browser_provider import CloudflareBrowserProvider
from .services.kv_store import KeyValueStore, get_kv_store as build_kv_store
from .services.preview_renderer import PreviewRenderer
from .services.project_store import ProjectStore
from .services.remote_client import RemoteServiceClient, get_remote_client as build_remote_client
from .services.storage_provider import StorageProvider, get_storage_provider as build_storage_provider
from .services.subscription_service import SubscriptionService
from .services.usage_meter import UsageMeter
from .services.wizard_controller import WizardController
from .services.wizard_sessions import WizardSessionRegistry

logger = logging.getLogger(__name__)


@lru_cache(maxsize=1)
def get_kv_store() -> KeyValueStore:
    return build_kv_store()


@lru_cache(maxsize=1)
def get_project_store() -> ProjectStore:
    return ProjectStore(get_kv_store())


@lru_cache(maxsize=1)
def get_subscription_service() -> SubscriptionService:
    return SubscriptionService(get_kv_store())


@lru_cache(maxsize=1)
def get_usage_meter() -> UsageMeter:
    return UsageMeter(get_kv_store(), get_subscription_service())


@lru_cache(maxsize=1)
def get_renderer() -> PreviewRenderer:
    return PreviewRenderer()


@lru_cache(maxsize=1)
def get_ai_provider() -> Optional[LiteLLMProvider]:
    """LiteLLM provider, or None when no model is configured"""
    if not config.ai_configured:
        logger.warning("LLM_MODEL is not set; AI endpoints will report the binding as unavailable")
        return None
    return LiteLLMProvider(
        model=config.LLM_MODEL,
        api_base=config.LLM_API_BASE,
        api_key=config.LLM_API_KEY,
        image_model=config.IMAGE_MODEL,
        timeout=config.REMOTE_TIMEOUT_SECONDS,
    )


@lru_cache(maxsize=1)
def get_browser_provider() -> Optional[CloudflareBrowserProvider]:
    """Browser rendering provider, or None when credentials are missing"""
    if not config.browser_configured:
        logger.warning("Cloudflare credentials are not set; browser endpoints will report the binding as unavailable")
        return None
    return CloudflareBrowserProvider(
        account_id=config.CLOUDFLARE_ACCOUNT_ID,
        api_token=config.CLOUDFLARE_API_TOKEN,
        base_url=config.BROWSER_RENDERING_BASE_URL,
        timeout=config.REMOTE_TIMEOUT_SECONDS,
    )


@lru_cache(maxsize=1)
def get_storage_provider() -> StorageProvider:
    return build_storage_provider()


@lru_cache(maxsize=1)
def get_remote_client() -> RemoteServiceClient:
    return build_remote_client()


@lru_cache(maxsize=1)
def get_wizard_sessions() -> WizardSessionRegistry:
    """Per-user wizard controllers sharing the process-wide services"""
    return WizardSessionRegistry(lambda: WizardController(
        project_store=get_project_store(),
        usage_meter=get_usage_meter(),
        remote_client=get_remote_client(),
        renderer=get_renderer(),
        timeout=config.REMOTE_TIMEOUT_SECONDS,
    ))


def get_current_user_id(x_user_id: Optional[str] = Header(None)) -> str:
    """
    User making the request

    Authentication lives in front of this service; it forwards the user id
    in the X-User-ID header.
    """
    if not x_user_id or not x_user_id.strip():
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="X-User-ID header is required"
        )
    return x_user_id.strip()
