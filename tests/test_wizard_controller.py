"""
Tests for the wizard controller
"""
import asyncio

import pytest

from listing_wizard.exceptions import LimitReached, RemoteError, ValidationError, WizardStateError
from listing_wizard.schemas import ProjectStatus, ShippingPolicy
from listing_wizard.services.wizard_controller import DONE, WizardController, WizardStep


async def wait_for_call(remote):
    """Yield to the loop until the fake client has received a call"""
    for _ in range(100):
        if remote.calls:
            return
        await asyncio.sleep(0)
    raise AssertionError("remote call never started")


class WizardTestBase:
    """Shared wizard fixture wiring"""

    @pytest.fixture(autouse=True)
    def setup_wizard(self, project_store, usage_meter, subscription_service, fake_remote, kv_store):
        self.store = project_store
        self.usage = usage_meter
        self.subscriptions = subscription_service
        self.remote = fake_remote
        self.kv_store = kv_store
        self.wizard = WizardController(project_store, usage_meter, fake_remote, timeout=1.0)

    def stored(self, project_id):
        return self.kv_store.get(f"project:{project_id}")

    def walk_to(self, step):
        """Enter and advance with valid data until `step` is active"""
        project = self.wizard.enter("user-1")
        steps = [
            {"title": "Widget"},
            {"storeName": "Acme"},
            {"images": ["https://img.example.com/1.png"]},
            {"seoKeywords": ["widget"]},
            {"shippingPolicy": "SAME_DAY"},
        ]
        for index, update in enumerate(steps[:step]):
            self.wizard.advance(index, update)
        return project


class TestWizardEntry(WizardTestBase):
    """enter()"""

    def test_enter_creates_draft(self):
        project = self.wizard.enter("user-1")

        assert project.status == ProjectStatus.DRAFT
        assert project.owner_id == "user-1"
        assert self.wizard.state == WizardStep.PRODUCT_SOURCE
        assert self.stored(project.id) is not None

    def test_enter_resumes_latest_draft(self):
        existing = self.store.create(owner_id="user-1", title="In progress")

        project = self.wizard.enter("user-1")

        assert project.id == existing.id
        assert project.title == "In progress"

    def test_enter_resumes_given_project(self):
        first = self.store.create(owner_id="user-1", title="First")
        self.store.create(owner_id="user-1", title="Second")

        project = self.wizard.enter("user-1", project_id=first.id)

        assert project.id == first.id

    def test_unknown_project_id_starts_new(self):
        project = self.wizard.enter("user-1", project_id="does-not-exist")

        assert project.id != "does-not-exist"
        assert self.stored(project.id)["ownerId"] == "user-1"

    def test_other_users_project_is_not_opened(self):
        foreign = self.store.create(owner_id="user-2", title="Not yours")

        project = self.wizard.enter("user-1", project_id=foreign.id)

        assert project.id != foreign.id
        assert project.owner_id == "user-1"

    def test_listing_limit_blocks_entry(self):
        self.usage.increment("user-1", "listings", 5)

        with pytest.raises(LimitReached):
            self.wizard.enter("user-1")

        assert list(self.store.list("user-1")) == []
        assert self.wizard.state is None

    def test_unlimited_plan_enters_past_free_limit(self):
        self.subscriptions.set_plan("user-1", "enterprise")
        self.usage.increment("user-1", "listings", 50)

        assert self.wizard.enter("user-1").owner_id == "user-1"

    def test_navigation_before_enter(self):
        with pytest.raises(WizardStateError):
            self.wizard.advance(0, {"title": "Widget"})


class TestWizardNavigation(WizardTestBase):
    """advance / go_back / skip"""

    def test_advance_merges_and_moves_forward(self):
        project = self.wizard.enter("user-1")

        updated = self.wizard.advance(0, {"title": "Widget", "description": "Nice"})

        assert updated.title == "Widget"
        assert self.wizard.state == WizardStep.BRANDING
        assert self.stored(project.id)["description"] == "Nice"

    def test_advance_keeps_unspecified_fields(self):
        project = self.wizard.enter("user-1")
        self.wizard.advance(0, {"title": "Widget", "description": "Nice"})

        self.wizard.advance(1, {"storeName": "Acme"})

        record = self.stored(project.id)
        assert record["title"] == "Widget"
        assert record["description"] == "Nice"

    def test_advance_with_wrong_index(self):
        self.wizard.enter("user-1")

        with pytest.raises(WizardStateError):
            self.wizard.advance(2, {"images": ["https://img.example.com/1.png"]})

        assert self.wizard.state == WizardStep.PRODUCT_SOURCE

    def test_product_source_requires_title(self):
        self.wizard.enter("user-1")

        with pytest.raises(ValidationError) as exc_info:
            self.wizard.advance(0, {"title": "   "})

        assert exc_info.value.field == "title"
        assert self.wizard.state == WizardStep.PRODUCT_SOURCE

    def test_branding_requires_store_name(self):
        self.walk_to(WizardStep.BRANDING)

        with pytest.raises(ValidationError) as exc_info:
            self.wizard.advance(1, {})

        assert exc_info.value.field == "store_name"

    def test_images_step_rejects_empty_images_without_writing(self):
        project = self.walk_to(WizardStep.IMAGES)
        before = self.stored(project.id)

        with pytest.raises(ValidationError):
            self.wizard.advance(2, {"images": [], "title": "Changed on the way"})

        assert self.stored(project.id) == before
        assert self.wizard.state == WizardStep.IMAGES

    def test_images_already_on_project_satisfy_step(self):
        project = self.walk_to(WizardStep.IMAGES)
        self.store.upsert(project.id, {"images": ["https://img.example.com/1.png"]})

        self.wizard.advance(2)

        assert self.wizard.state == WizardStep.SEO

    def test_shipping_fills_default_policy(self):
        project = self.walk_to(WizardStep.SHIPPING)
        self.store.upsert(project.id, {"shippingPolicy": None})

        updated = self.wizard.advance(4, {"shippingPolicy": None})

        assert updated.shipping_policy == ShippingPolicy.D2_5
        assert self.stored(project.id)["shippingPolicy"] == "D2_5"

    def test_shipping_rejects_unknown_policy(self):
        self.walk_to(WizardStep.SHIPPING)

        with pytest.raises(ValidationError):
            self.wizard.advance(4, {"shippingPolicy": "NEXT_MONTH"})

    def test_go_back_does_not_mutate(self):
        project = self.walk_to(WizardStep.IMAGES)
        before = self.stored(project.id)

        self.wizard.go_back(2)

        assert self.wizard.state == WizardStep.BRANDING
        assert self.stored(project.id) == before

    def test_go_back_on_first_step_is_noop(self):
        self.wizard.enter("user-1")

        self.wizard.go_back(0)

        assert self.wizard.state == WizardStep.PRODUCT_SOURCE

    def test_skip_product_source(self):
        project = self.wizard.enter("user-1")

        self.wizard.skip()

        assert self.wizard.state == WizardStep.BRANDING
        assert self.stored(project.id)["title"] == ""

    def test_skip_only_from_first_step(self):
        self.walk_to(WizardStep.BRANDING)

        with pytest.raises(WizardStateError):
            self.wizard.skip()

    def test_advance_not_allowed_on_preview(self):
        self.walk_to(WizardStep.PREVIEW)

        with pytest.raises(WizardStateError):
            self.wizard.advance(5, {})


class TestWizardCompletion(WizardTestBase):
    """complete()"""

    def test_complete_counts_one_listing(self):
        project = self.walk_to(WizardStep.PREVIEW)

        html = self.wizard.complete()

        assert "<h1 class=\"lw-title\">Widget</h1>" in html
        assert self.wizard.state == DONE
        assert self.usage.get_usage("user-1").listings_generated == 1
        assert self.stored(project.id)["status"] == "DRAFT"

    def test_complete_twice_is_refused(self):
        self.walk_to(WizardStep.PREVIEW)
        self.wizard.complete()

        with pytest.raises(WizardStateError):
            self.wizard.complete()

        assert self.usage.get_usage("user-1").listings_generated == 1

    def test_complete_before_preview(self):
        self.walk_to(WizardStep.SHIPPING)

        with pytest.raises(WizardStateError):
            self.wizard.complete()

        assert self.usage.get_usage("user-1").listings_generated == 0

    def test_navigation_after_done(self):
        self.walk_to(WizardStep.PREVIEW)
        self.wizard.complete()

        with pytest.raises(WizardStateError):
            self.wizard.go_back(5)


class TestWizardRemoteActions(WizardTestBase):
    """Remote calls bound to their steps"""

    def test_extract_from_url_fills_product_fields(self):
        project = self.wizard.enter("user-1")

        updated = asyncio.run(self.wizard.extract_from_url("https://shop.example.com/bottle"))

        assert updated.source_url == "https://shop.example.com/bottle"
        assert updated.title == "Acme Steel Water Bottle"
        assert updated.highlights == ["Double-wall insulation", "Leak-proof lid"]
        assert self.stored(project.id)["sourceUrl"] == "https://shop.example.com/bottle"
        assert self.usage.get_usage("user-1").ai_requests_made == 1
        assert self.wizard.state == WizardStep.PRODUCT_SOURCE

    def test_extraction_with_missing_fields_keeps_existing(self):
        from listing_wizard.schemas import ExtractedProduct

        self.store.create(owner_id="user-1", title="Typed by hand", highlights=["Mine"])
        self.wizard.enter("user-1")
        self.remote.product = ExtractedProduct(description="Only a description")

        updated = asyncio.run(self.wizard.extract_from_url("https://shop.example.com/bottle"))

        assert updated.title == "Typed by hand"
        assert updated.highlights == ["Mine"]
        assert updated.description == "Only a description"

    def test_extract_rejects_invalid_url(self):
        self.wizard.enter("user-1")

        with pytest.raises(ValidationError):
            asyncio.run(self.wizard.extract_from_url("ftp://shop.example.com"))

        assert self.remote.calls == []

    def test_extraction_failure_leaves_project_untouched(self):
        project = self.wizard.enter("user-1")
        self.store.upsert(project.id, {"sourceUrl": "https://old.example.com/item"})
        before = self.stored(project.id)
        self.remote.error = RemoteError("Browser binding not available")

        with pytest.raises(RemoteError):
            asyncio.run(self.wizard.extract_from_url("https://shop.example.com/bottle"))

        assert self.stored(project.id) == before
        assert self.wizard.state == WizardStep.PRODUCT_SOURCE
        assert self.wizard.last_error == "Browser binding not available"
        assert self.usage.get_usage("user-1").ai_requests_made == 0

    def test_extraction_timeout(self):
        project = self.wizard.enter("user-1")
        self.store.upsert(project.id, {"sourceUrl": "https://old.example.com/item"})
        self.wizard.timeout = 0.05
        self.remote.delay = 1.0

        with pytest.raises(RemoteError):
            asyncio.run(self.wizard.extract_from_url("https://shop.example.com/bottle"))

        assert self.stored(project.id)["sourceUrl"] == "https://old.example.com/item"
        assert self.wizard.state == WizardStep.PRODUCT_SOURCE
        assert "timed out" in self.wizard.last_error

        self.wizard.clear_error()
        assert self.wizard.last_error is None

    def test_retry_after_failure(self):
        self.wizard.enter("user-1")
        self.remote.error = RemoteError("temporary")
        with pytest.raises(RemoteError):
            asyncio.run(self.wizard.extract_from_url("https://shop.example.com/bottle"))

        self.remote.error = None
        updated = asyncio.run(self.wizard.extract_from_url("https://shop.example.com/bottle"))

        assert updated.title == "Acme Steel Water Bottle"
        assert self.wizard.last_error is None

    def test_ai_limit_checked_before_call(self):
        self.wizard.enter("user-1")
        self.usage.increment("user-1", "aiRequests", 10)

        with pytest.raises(LimitReached):
            asyncio.run(self.wizard.extract_from_url("https://shop.example.com/bottle"))

        assert self.remote.calls == []

    def test_action_on_wrong_step(self):
        self.wizard.enter("user-1")

        with pytest.raises(WizardStateError):
            asyncio.run(self.wizard.optimize_seo())

    def test_enhance_description(self):
        project = self.wizard.enter("user-1")
        self.store.upsert(project.id, {"description": "750 ml steel bottle"})

        updated = asyncio.run(self.wizard.enhance_description())

        assert updated.description == "<p><strong>Capacity:</strong> 750 ml</p>"

    def test_enhance_requires_description(self):
        self.wizard.enter("user-1")

        with pytest.raises(ValidationError):
            asyncio.run(self.wizard.enhance_description())

    def test_optimize_seo_merges_suggestions(self):
        project = self.walk_to(WizardStep.SEO)
        self.store.upsert(project.id, {"seoKeywords": ["water bottle"], "highlights": ["Sturdy"]})

        updated = asyncio.run(self.wizard.optimize_seo(use_web_context=False))

        assert updated.seo_keywords == ["water bottle", "insulated bottle"]
        assert updated.highlights == ["Sturdy", "*BPA free* steel"]
        assert self.usage.get_usage("user-1").ai_requests_made == 1

    def test_upload_images_appends(self):
        project = self.walk_to(WizardStep.IMAGES)
        self.store.upsert(project.id, {"images": ["https://img.example.com/existing.png"]})

        updated = asyncio.run(self.wizard.upload_images([(b"one", "image/png"), (b"two", "image/jpeg")]))

        assert updated.images == [
            "https://img.example.com/existing.png",
            "https://img.example.com/1.png",
            "https://img.example.com/2.png",
        ]
        assert self.usage.get_usage("user-1").ai_requests_made == 0

    def test_upload_logo(self):
        self.walk_to(WizardStep.BRANDING)

        updated = asyncio.run(self.wizard.upload_logo(b"logo"))

        assert updated.store_logo == "https://img.example.com/1.png"


class TestWizardInFlightCalls(WizardTestBase):
    """Stale results and single in-flight call"""

    def test_going_back_discards_pending_result(self):
        project = self.walk_to(WizardStep.SEO)
        before = self.stored(project.id)

        async def scenario():
            self.remote.gate = asyncio.Event()
            task = asyncio.create_task(self.wizard.optimize_seo())
            await wait_for_call(self.remote)

            self.wizard.go_back(3)
            self.remote.gate.set()
            return await task

        result = asyncio.run(scenario())

        assert result is None
        assert self.stored(project.id) == before
        assert self.wizard.state == WizardStep.IMAGES

    def test_reentering_discards_pending_result(self):
        first = self.wizard.enter("user-1")

        async def scenario():
            self.remote.gate = asyncio.Event()
            task = asyncio.create_task(self.wizard.extract_from_url("https://shop.example.com/bottle"))
            await wait_for_call(self.remote)

            self.wizard.enter("user-1", project_id="brand-new")
            self.remote.gate.set()
            return await task

        result = asyncio.run(scenario())

        assert result is None
        assert self.stored(first.id)["title"] == ""

    def test_cannot_advance_while_call_pending(self):
        self.walk_to(WizardStep.SEO)

        async def scenario():
            self.remote.gate = asyncio.Event()
            task = asyncio.create_task(self.wizard.optimize_seo())
            await wait_for_call(self.remote)
            try:
                with pytest.raises(WizardStateError):
                    self.wizard.advance(3, {})
                with pytest.raises(WizardStateError):
                    await self.wizard.optimize_seo()
            finally:
                self.remote.gate.set()
            return await task

        result = asyncio.run(scenario())

        assert result is not None
        assert self.wizard.state == WizardStep.SEO
        assert self.remote.calls == ["optimize_seo"]

    def test_stale_failure_does_not_surface_error(self):
        self.walk_to(WizardStep.SEO)
        self.remote.error = RemoteError("late failure")

        async def scenario():
            self.remote.gate = asyncio.Event()
            task = asyncio.create_task(self.wizard.optimize_seo())
            await wait_for_call(self.remote)
            self.wizard.go_back(3)
            self.remote.gate.set()
            with pytest.raises(RemoteError):
                await task

        asyncio.run(scenario())

        assert self.wizard.last_error is None


class TestWizardStepRequirements(WizardTestBase):
    """Requirements of completed steps stay satisfied"""

    def test_later_step_cannot_clear_earlier_requirements(self):
        project = self.walk_to(WizardStep.SEO)
        before = self.stored(project.id)

        with pytest.raises(ValidationError) as exc_info:
            self.wizard.advance(3, {"images": [], "storeName": ""})

        assert exc_info.value.field == "store_name"
        assert self.stored(project.id) == before
        assert self.wizard.state == WizardStep.SEO

    def test_cleared_images_are_rejected_on_shipping(self):
        project = self.walk_to(WizardStep.SHIPPING)
        self.store.upsert(project.id, {"images": []})

        with pytest.raises(ValidationError) as exc_info:
            self.wizard.advance(4, {"shippingPolicy": "SAME_DAY"})

        assert exc_info.value.field == "images"
        assert self.wizard.state == WizardStep.SHIPPING

    def test_complete_rechecks_completed_steps(self):
        project = self.walk_to(WizardStep.PREVIEW)
        self.store.upsert(project.id, {"images": []})

        with pytest.raises(ValidationError) as exc_info:
            self.wizard.complete()

        assert exc_info.value.field == "images"
        assert self.wizard.state == WizardStep.PREVIEW
        assert self.usage.get_usage("user-1").listings_generated == 0

    def test_skipped_product_source_is_not_rechecked(self):
        self.wizard.enter("user-1")
        self.wizard.skip()
        self.wizard.advance(1, {"storeName": "Acme"})
        self.wizard.advance(2, {"images": ["https://img.example.com/1.png"]})
        self.wizard.advance(3, {})
        self.wizard.advance(4, {})

        self.wizard.complete()

        assert self.wizard.state == DONE


class TestWizardRemoteFailures(WizardTestBase):
    """Every remote failure surfaces as RemoteError on the step"""

    def test_malformed_seo_reply_from_proxy(self, project_store, usage_meter):
        import httpx
        from listing_wizard.services.remote_client import ProxyRemoteServiceClient

        def handler(request):
            reply = '{"keywords": 5, "highlights": {"not": "a list"}}'
            return httpx.Response(200, json={"success": True, "result": reply})

        client = ProxyRemoteServiceClient(
            "http://proxy.test",
            http_client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
        )
        self.wizard = WizardController(project_store, usage_meter, client, timeout=1.0)
        self.walk_to(WizardStep.SEO)

        updated = asyncio.run(self.wizard.optimize_seo())

        assert updated.seo_keywords == []
        assert updated.highlights == []
        assert self.wizard.last_error is None

    def test_unexpected_client_error_becomes_remote_error(self):
        project = self.walk_to(WizardStep.SEO)
        before = self.stored(project.id)
        self.remote.error = TypeError("'int' object is not iterable")

        with pytest.raises(RemoteError) as exc_info:
            asyncio.run(self.wizard.optimize_seo())

        assert isinstance(exc_info.value.__cause__, TypeError)
        assert self.wizard.last_error == "SEO optimization failed unexpectedly"
        assert self.wizard.state == WizardStep.SEO
        assert self.stored(project.id) == before
        assert self.usage.get_usage("user-1").ai_requests_made == 0

    def test_failed_upload_cancels_the_others(self):
        project = self.walk_to(WizardStep.IMAGES)
        before = self.stored(project.id)
        cancelled = []

        async def upload_image(file_bytes, content_type="image/png"):
            if file_bytes == b"bad":
                raise RemoteError("upload rejected")
            try:
                await asyncio.sleep(10)
            except asyncio.CancelledError:
                cancelled.append(file_bytes)
                raise

        self.remote.upload_image = upload_image

        async def scenario():
            with pytest.raises(RemoteError):
                await self.wizard.upload_images([(b"slow", "image/png"), (b"bad", "image/png")])
            for _ in range(3):
                await asyncio.sleep(0)
            return list(cancelled)

        assert asyncio.run(scenario()) == [b"slow"]
        assert self.wizard.last_error == "upload rejected"
        assert self.stored(project.id) == before
