"""
Wizard API routes
Drives the signed-in user's listing wizard session: navigation, remote actions and completion.
All routes are async so every controller call runs on the event loop that owns its call lock.
"""
import base64
import binascii
import logging
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, ConfigDict, Field

from .dependencies import get_current_user_id, get_wizard_sessions
from .exceptions import ValidationError
from .services.wizard_controller import DONE, WizardController
from .services.wizard_sessions import WizardSessionRegistry

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/wizard", tags=["wizard"])


class WizardRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class EnterRequest(WizardRequest):
    project_id: Optional[str] = Field(None, alias="projectId")


class StepRequest(WizardRequest):
    step: int = Field(..., ge=0)


class AdvanceRequest(StepRequest):
    fields: Dict[str, Any] = Field(default_factory=dict)


class ExtractRequest(WizardRequest):
    url: str


class SEORequest(WizardRequest):
    use_web_context: bool = Field(True, alias="useWebContext")


class ImageFile(WizardRequest):
    data: str
    content_type: str = Field("image/png", alias="contentType")


class UploadImagesRequest(WizardRequest):
    files: List[ImageFile] = Field(..., min_length=1)


def get_wizard(
    user_id: str = Depends(get_current_user_id),
    sessions: WizardSessionRegistry = Depends(get_wizard_sessions)
) -> WizardController:
    return sessions.get(user_id)


def _decode(image: ImageFile, field: str) -> bytes:
    try:
        return base64.b64decode(image.data, validate=True)
    except (binascii.Error, ValueError) as e:
        raise ValidationError("Image data is not valid base64", field=field) from e


def _session_state(wizard: WizardController, applied: bool = True) -> Dict[str, Any]:
    """
    Wizard state returned by every route

    `applied` is False when a remote result arrived after the user moved on
    and was therefore dropped.
    """
    state = wizard.state
    return {
        "state": DONE if state == DONE else (state.name if state is not None else None),
        "stepIndex": wizard.step_index,
        "callPending": wizard.call_pending,
        "lastError": wizard.last_error,
        "applied": applied,
        "project": wizard.project.to_record() if wizard.project_id else None,
    }


@router.get("")
async def get_session(wizard: WizardController = Depends(get_wizard)):
    """Current wizard state of the user"""
    return _session_state(wizard)


@router.post("/enter")
async def enter(
    request: EnterRequest,
    user_id: str = Depends(get_current_user_id),
    wizard: WizardController = Depends(get_wizard)
):
    """Start a new listing or resume a draft"""
    wizard.enter(user_id, project_id=request.project_id)
    return _session_state(wizard)


@router.post("/advance")
async def advance(request: AdvanceRequest, wizard: WizardController = Depends(get_wizard)):
    wizard.advance(request.step, request.fields)
    return _session_state(wizard)


@router.post("/back")
async def go_back(request: StepRequest, wizard: WizardController = Depends(get_wizard)):
    wizard.go_back(request.step)
    return _session_state(wizard)


@router.post("/skip")
async def skip(wizard: WizardController = Depends(get_wizard)):
    wizard.skip()
    return _session_state(wizard)


@router.post("/complete")
async def complete(wizard: WizardController = Depends(get_wizard)):
    """Finish the wizard; the response carries the listing HTML"""
    html = wizard.complete()
    return {**_session_state(wizard), "html": html}


@router.delete("/error")
async def clear_error(wizard: WizardController = Depends(get_wizard)):
    wizard.clear_error()
    return _session_state(wizard)


@router.post("/extract")
async def extract_from_url(request: ExtractRequest, wizard: WizardController = Depends(get_wizard)):
    """Fill the product source step from a product page"""
    project = await wizard.extract_from_url(request.url)
    return _session_state(wizard, applied=project is not None)


@router.post("/enhance-description")
async def enhance_description(wizard: WizardController = Depends(get_wizard)):
    project = await wizard.enhance_description()
    return _session_state(wizard, applied=project is not None)


@router.post("/seo")
async def optimize_seo(request: SEORequest, wizard: WizardController = Depends(get_wizard)):
    project = await wizard.optimize_seo(use_web_context=request.use_web_context)
    return _session_state(wizard, applied=project is not None)


@router.post("/images")
async def upload_images(request: UploadImagesRequest, wizard: WizardController = Depends(get_wizard)):
    """Upload base64-encoded product images in display order"""
    files = [(_decode(image, "images"), image.content_type) for image in request.files]
    project = await wizard.upload_images(files)
    return _session_state(wizard, applied=project is not None)


@router.post("/logo")
async def upload_logo(request: ImageFile, wizard: WizardController = Depends(get_wizard)):
    project = await wizard.upload_logo(_decode(request, "store_logo"), request.content_type)
    return _session_state(wizard, applied=project is not None)
