"""
Wizard Controller - drives a Project through the fixed sequence of listing steps

Steps run strictly in order. Remote calls (extraction, SEO, uploads) are the
only suspension points; each is tied to a ticket naming the project, step and
navigation epoch that issued it, and a result whose ticket no longer matches
the live state is dropped instead of being applied.
"""
import asyncio
import logging
from dataclasses import dataclass
from enum import IntEnum
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence, Tuple
from urllib.parse import urlparse

from ..exceptions import NotFound, RemoteError, ValidationError, WizardStateError
from ..schemas import DEFAULT_SHIPPING_POLICY, Project, ShippingPolicy
from .preview_renderer import PreviewRenderer
from .project_store import ProjectStore
from .remote_client import RemoteServiceClient
from .text_utils import strip_html
from .usage_meter import UsageMeter

logger = logging.getLogger(__name__)


class WizardStep(IntEnum):
    """Wizard steps in traversal order"""
    PRODUCT_SOURCE = 0
    BRANDING = 1
    IMAGES = 2
    SEO = 3
    SHIPPING = 4
    PREVIEW = 5


DONE = "DONE"


@dataclass(frozen=True)
class CallTicket:
    """Identifies the wizard state a remote call was issued from"""
    project_id: str
    step: WizardStep
    epoch: int


def _require_title(project: Project) -> None:
    if not project.title.strip():
        raise ValidationError("Product title is required", field="title", step=WizardStep.PRODUCT_SOURCE.name)


def _require_store_name(project: Project) -> None:
    if not project.store_name.strip():
        raise ValidationError("Store name is required", field="store_name", step=WizardStep.BRANDING.name)


def _require_images(project: Project) -> None:
    if len(project.images) < 1:
        raise ValidationError("At least one image is required", field="images", step=WizardStep.IMAGES.name)


def _require_shipping_policy(project: Project) -> None:
    if not isinstance(project.shipping_policy, ShippingPolicy):
        raise ValidationError(
            "A shipping policy is required",
            field="shipping_policy",
            step=WizardStep.SHIPPING.name
        )


# Required fields per step, checked against the merged project before it is written
STEP_VALIDATORS: Dict[WizardStep, Callable[[Project], None]] = {
    WizardStep.PRODUCT_SOURCE: _require_title,
    WizardStep.BRANDING: _require_store_name,
    WizardStep.IMAGES: _require_images,
    WizardStep.SHIPPING: _require_shipping_policy,
}


def _checks_through(step: WizardStep) -> Callable[[Project], None]:
    """
    Validator for leaving `step`: its own requirements plus those of every
    completed step after the product source, which skip() may bypass
    """
    if step == WizardStep.PRODUCT_SOURCE:
        validators = [STEP_VALIDATORS[step]]
    else:
        validators = [
            STEP_VALIDATORS[earlier]
            for earlier in WizardStep
            if WizardStep.BRANDING <= earlier <= step and earlier in STEP_VALIDATORS
        ]

    def check(project: Project) -> None:
        for validator in validators:
            validator(project)

    return check


def _validate_url(url: str) -> str:
    url = (url or "").strip()
    parsed = urlparse(url)
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        raise ValidationError("Enter a valid http(s) product URL", field="source_url")
    return url


def _merge(existing: List[str], suggested: List[str]) -> List[str]:
    """Existing entries followed by new suggestions, without duplicates"""
    merged = list(existing)
    for item in suggested:
        if item not in merged:
            merged.append(item)
    return merged


class WizardController:
    """
    Single-session controller for the listing wizard

    One controller serves one user session. Navigation methods are plain
    calls; remote actions are coroutines, at most one in flight at a time.
    """

    def __init__(
        self,
        project_store: ProjectStore,
        usage_meter: UsageMeter,
        remote_client: RemoteServiceClient,
        renderer: Optional[PreviewRenderer] = None,
        timeout: float = 30.0
    ):
        """
        Args:
            project_store: Project persistence
            usage_meter: Plan limit enforcement
            remote_client: AI and browser rendering calls
            renderer: HTML renderer used on completion
            timeout: Upper bound in seconds for each remote call
        """
        self.project_store = project_store
        self.usage_meter = usage_meter
        self.remote_client = remote_client
        self.renderer = renderer or PreviewRenderer()
        self.timeout = timeout

        self.user_id: Optional[str] = None
        self.project_id: Optional[str] = None
        self.step_index: Optional[int] = None
        self.done = False
        self.last_error: Optional[str] = None
        self._epoch = 0
        self._call_lock = asyncio.Lock()

    # -- state ---------------------------------------------------------------

    @property
    def state(self):
        """Current WizardStep, DONE, or None before enter()"""
        if self.done:
            return DONE
        if self.step_index is None:
            return None
        return WizardStep(self.step_index)

    @property
    def call_pending(self) -> bool:
        return self._call_lock.locked()

    @property
    def project(self) -> Project:
        """The live project, read from the store"""
        self._require_entered()
        return self.project_store.get(self.project_id)

    def clear_error(self) -> None:
        """Dismiss the last remote-call error"""
        self.last_error = None

    def _require_entered(self) -> None:
        if self.project_id is None:
            raise WizardStateError("Wizard has not been entered")

    def _require_active(self) -> None:
        self._require_entered()
        if self.done:
            raise WizardStateError("Wizard is already complete")

    def _require_idle(self) -> None:
        if self.call_pending:
            raise WizardStateError("Wait for the pending request to finish before moving on")

    def _require_pointer(self, current_step_index: int) -> WizardStep:
        if current_step_index != self.step_index:
            raise WizardStateError(
                f"Step {current_step_index} is not the active step (active: {self.step_index})"
            )
        return WizardStep(current_step_index)

    def _move_to(self, step_index: int) -> None:
        self.step_index = step_index
        self._epoch += 1

    # -- navigation ----------------------------------------------------------

    def enter(self, user_id: str, project_id: Optional[str] = None) -> Project:
        """
        Start or resume a wizard session

        The listings limit is checked before anything is read or created.
        An explicit project_id is resumed if it exists and belongs to the user,
        otherwise a new project is started. Without one, the user's newest
        draft is resumed, or a new draft is created.

        Args:
            user_id: Session user
            project_id: Optional project to resume

        Returns:
            The Project the wizard now operates on

        Raises:
            LimitReached: If the user's listings limit has been reached
        """
        self.usage_meter.enforce_limit(user_id, "listings")

        project = None
        if project_id:
            try:
                project = self.project_store.get(project_id)
            except NotFound:
                logger.info(f"Project {project_id} not found, starting a new listing for user {user_id}")
            if project is not None and project.owner_id != user_id:
                logger.warning(f"User {user_id} tried to open project {project_id} owned by another user")
                project = None
        else:
            project = self.project_store.latest_draft(user_id)

        if project is None:
            project = self.project_store.create(owner_id=user_id)
        else:
            logger.info(f"Resuming project {project.id} for user {user_id}")

        self.user_id = user_id
        self.project_id = project.id
        self.done = False
        self.last_error = None
        self._move_to(WizardStep.PRODUCT_SOURCE)
        return project

    def advance(self, current_step_index: int, partial_update: Optional[Dict[str, Any]] = None) -> Project:
        """
        Save the current step's fields and move to the next step

        Args:
            current_step_index: Step the caller believes is active
            partial_update: Fields to merge into the project

        Returns:
            The updated Project

        Raises:
            WizardStateError: Wrong step, call in flight, or on the preview step
            ValidationError: Required fields of this or an earlier step are missing; nothing is written
        """
        self._require_active()
        self._require_idle()
        step = self._require_pointer(current_step_index)
        if step == WizardStep.PREVIEW:
            raise WizardStateError("Preview is the last step; call complete() to finish")

        updates = dict(partial_update or {})
        if step == WizardStep.SHIPPING:
            self._fill_shipping_default(updates)

        project = self.project_store.upsert(self.project_id, updates, check=_checks_through(step))
        self._move_to(step + 1)
        logger.debug(f"Project {self.project_id} advanced from {step.name} to {WizardStep(self.step_index).name}")
        return project

    def _fill_shipping_default(self, updates: Dict[str, Any]) -> None:
        key = "shippingPolicy" if "shippingPolicy" in updates else "shipping_policy"
        if key in updates:
            if updates[key] is None:
                updates[key] = DEFAULT_SHIPPING_POLICY
        elif self.project.shipping_policy is None:
            updates[key] = DEFAULT_SHIPPING_POLICY

    def go_back(self, current_step_index: int) -> None:
        """Move to the previous step without touching the project; no-op on the first step"""
        self._require_active()
        self._require_pointer(current_step_index)
        if current_step_index == WizardStep.PRODUCT_SOURCE:
            return
        self._move_to(current_step_index - 1)

    def skip(self) -> None:
        """Leave the product source step without extracting or validating"""
        self._require_active()
        self._require_idle()
        if self.step_index != WizardStep.PRODUCT_SOURCE:
            raise WizardStateError("Only the product source step can be skipped")
        self._move_to(WizardStep.BRANDING)

    def complete(self) -> str:
        """
        Finish the wizard from the preview step

        Counts one generated listing and returns the rendered HTML. The project
        stays a DRAFT; publishing happens outside the wizard.

        Returns:
            Listing HTML document

        Raises:
            ValidationError: A completed step's required field has since been cleared
        """
        self._require_active()
        self._require_idle()
        if self.step_index != WizardStep.PREVIEW:
            raise WizardStateError("The wizard can only be completed from the preview step")

        project = self.project
        _checks_through(WizardStep.SHIPPING)(project)
        html = self.renderer.render(project)
        self.usage_meter.increment(self.user_id, "listings", 1)
        self.done = True
        self._epoch += 1
        logger.info(f"Wizard completed for project {project.id}")
        return html

    def render_preview(self) -> str:
        """HTML of the project as it currently stands"""
        return self.renderer.render(self.project)

    # -- remote actions ------------------------------------------------------

    def _is_current(self, ticket: CallTicket) -> bool:
        return (
            not self.done
            and self.project_id == ticket.project_id
            and self.step_index == ticket.step
            and self._epoch == ticket.epoch
        )

    async def _call_remote(
        self,
        step: WizardStep,
        action: str,
        call: Callable[[], Awaitable[Any]],
        counts_as_ai: bool = False
    ) -> Tuple[bool, Any]:
        """
        Run one remote call on behalf of a step

        Returns:
            (applicable, result); applicable is False when the wizard moved
            on while the call was in flight

        Raises:
            RemoteError: The call failed or timed out
        """
        self._require_active()
        if self.step_index != step:
            raise WizardStateError(f"{action} is only available on the {step.name} step")
        self._require_idle()
        if counts_as_ai:
            self.usage_meter.enforce_limit(self.user_id, "aiRequests")

        ticket = CallTicket(self.project_id, step, self._epoch)
        async with self._call_lock:
            try:
                result = await asyncio.wait_for(call(), timeout=self.timeout)
            except asyncio.TimeoutError as e:
                message = f"{action} timed out after {self.timeout:g} seconds"
                logger.warning(f"{message} (project {ticket.project_id})")
                self._record_error(ticket, message)
                raise RemoteError(message) from e
            except RemoteError as e:
                logger.warning(f"{action} failed for project {ticket.project_id}: {e.message}")
                self._record_error(ticket, e.message)
                raise
            except Exception as e:
                message = f"{action} failed unexpectedly"
                logger.error(f"{message} for project {ticket.project_id}: {e}", exc_info=True)
                self._record_error(ticket, message)
                raise RemoteError(message) from e

        if counts_as_ai:
            self.usage_meter.increment(self.user_id, "aiRequests", 1)

        if not self._is_current(ticket):
            logger.info(f"Discarding stale {action} result for project {ticket.project_id} from {step.name}")
            return False, result

        self.last_error = None
        return True, result

    def _record_error(self, ticket: CallTicket, message: str) -> None:
        if self._is_current(ticket):
            self.last_error = message

    async def extract_from_url(self, url: str) -> Optional[Project]:
        """
        Fill the product source fields from a product page

        Returns:
            The updated Project, or None if the result arrived after the user moved on
        """
        url = _validate_url(url)
        applicable, product = await self._call_remote(
            WizardStep.PRODUCT_SOURCE,
            "Product extraction",
            lambda: self.remote_client.extract_product_data(url),
            counts_as_ai=True,
        )
        if not applicable:
            return None

        updates: Dict[str, Any] = {"source_url": url}
        if product.title:
            updates["title"] = product.title
        if product.description:
            updates["description"] = product.description
        if product.features:
            updates["highlights"] = product.features
        return self.project_store.upsert(self.project_id, updates)

    async def enhance_description(self) -> Optional[Project]:
        """Rewrite the current description as listing-ready HTML"""
        description = strip_html(self.project.description)
        if not description:
            raise ValidationError("Add a description before enhancing it", field="description")

        applicable, enhanced = await self._call_remote(
            WizardStep.PRODUCT_SOURCE,
            "Description enhancement",
            lambda: self.remote_client.enhance_description(description),
            counts_as_ai=True,
        )
        if not applicable:
            return None
        return self.project_store.upsert(self.project_id, {"description": enhanced})

    async def optimize_seo(self, use_web_context: bool = True) -> Optional[Project]:
        """
        Add suggested keywords and highlights to the project

        Suggestions are merged after the existing entries; duplicates are dropped.
        """
        project = self.project
        applicable, suggestions = await self._call_remote(
            WizardStep.SEO,
            "SEO optimization",
            lambda: self.remote_client.optimize_seo(
                project.title,
                strip_html(project.description),
                use_web_context=use_web_context,
            ),
            counts_as_ai=True,
        )
        if not applicable:
            return None

        current = self.project
        return self.project_store.upsert(self.project_id, {
            "seo_keywords": _merge(current.seo_keywords, suggestions.keywords),
            "highlights": _merge(current.highlights, suggestions.highlights),
        })

    async def upload_images(self, files: Sequence[Tuple[bytes, str]]) -> Optional[Project]:
        """
        Upload images and append their URLs to the project's images

        Args:
            files: (file bytes, content type) pairs, in display order
        """
        if not files:
            raise ValidationError("Select at least one image to upload", field="images")

        async def upload_all() -> List[str]:
            tasks = [
                asyncio.ensure_future(self.remote_client.upload_image(data, content_type))
                for data, content_type in files
            ]
            try:
                uploaded = await asyncio.gather(*tasks)
            except Exception:
                # gather leaves the remaining uploads running after the first failure
                for task in tasks:
                    task.cancel()
                raise
            return [image.url for image in uploaded]

        applicable, urls = await self._call_remote(WizardStep.IMAGES, "Image upload", upload_all)
        if not applicable:
            return None

        current = self.project
        return self.project_store.upsert(self.project_id, {"images": current.images + urls})

    async def upload_logo(self, file_bytes: bytes, content_type: str = "image/png") -> Optional[Project]:
        """Upload a store logo and set it on the project"""
        if not file_bytes:
            raise ValidationError("Logo file is empty", field="store_logo")

        applicable, image = await self._call_remote(
            WizardStep.BRANDING,
            "Logo upload",
            lambda: self.remote_client.upload_image(file_bytes, content_type),
        )
        if not applicable:
            return None
        return self.project_store.upsert(self.project_id, {"store_logo": image.url})
