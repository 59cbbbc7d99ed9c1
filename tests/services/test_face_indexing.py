"""Tests for storing and regenerating reference face identifiers."""
import asyncio
from typing import List, Optional

import pytest

from facesearch.core.exceptions import (
    FeatureRequiresApprovalError,
    NoActiveProviderError,
    ProviderUnavailableError,
)
from facesearch.domain.entities.face import FaceId
from facesearch.domain.entities.provider import ProviderType
from facesearch.services.face_indexing import FaceIndexingService, approval_error_summary
from facesearch.services.provider_config import ProviderConfigCache
from tests.fakes import (
    FakeConfigStore,
    FakeFaceProvider,
    FakeImageLoader,
    InMemoryEmbeddingRepository,
    InMemoryReferenceRepository,
    make_config,
    make_reference,
)


def photo_url(relationship_id: str) -> str:
    return f"https://photos.example.com/{relationship_id}.jpg"


class ScriptedProvider(FakeFaceProvider):
    """Provider that fails extraction for chosen images and tracks concurrency."""

    def __init__(self, config, extract_errors=None, delay: float = 0.0):
        super().__init__(config)
        self.extract_errors = extract_errors or {}
        self.delay = delay
        self.in_flight = 0
        self.max_in_flight = 0

    async def _extract(self, image_bytes: bytes) -> Optional[str]:
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
            error = self.extract_errors.get(image_bytes)
            if error is not None:
                raise error
            if image_bytes == b"blank":
                return None
            return "face-" + image_bytes.decode()
        finally:
            self.in_flight -= 1


class IndexingHarness:
    def __init__(self, relationship_ids: List[str], extract_errors=None, delay: float = 0.0,
                 batch_size: int = 5, concurrency: int = 5, active: bool = True):
        self.config = make_config()
        self.store = FakeConfigStore(self.config if active else None)
        self.embeddings = InMemoryEmbeddingRepository()
        self.references = InMemoryReferenceRepository([make_reference(rid) for rid in relationship_ids])
        self.images = FakeImageLoader({photo_url(rid): rid.encode() for rid in relationship_ids})
        self.provider = ScriptedProvider(self.config, extract_errors, delay)
        self.sleeps: List[float] = []

        async def sleep(seconds: float) -> None:
            self.sleeps.append(seconds)

        self.service = FaceIndexingService(
            config_cache=ProviderConfigCache(self.store),
            embeddings=self.embeddings,
            references=self.references,
            image_loader=self.images,
            provider_factory=lambda config: self.provider,
            batch_size=batch_size,
            concurrency=concurrency,
            batch_delay=1.0,
            sleep=sleep,
        )


class TestStoreFaceEmbedding:
    """Test suite for FaceIndexingService.store_face_embedding."""

    async def test_stores_identifier_from_reference_photo(self):
        harness = IndexingHarness(["r1"])

        assert await harness.service.store_face_embedding("r1") is True

        record = harness.embeddings.records["r1"]
        assert record.face_service_id == "face-r1"
        assert record.face_service_type == ProviderType.CUSTOM
        assert record.partner_name == "Partner r1"
        assert record.face_photo_url == photo_url("r1")
        assert record.updated_at is not None

    async def test_explicit_photo_overrides_stored_photo(self):
        harness = IndexingHarness(["r1"])
        harness.images.images["https://photos.example.com/new.jpg"] = b"new"

        assert await harness.service.store_face_embedding("r1", "https://photos.example.com/new.jpg")

        record = harness.embeddings.records["r1"]
        assert record.face_service_id == "face-new"
        assert record.face_photo_url == "https://photos.example.com/new.jpg"

    async def test_unknown_reference_returns_false(self):
        harness = IndexingHarness([])

        assert await harness.service.store_face_embedding("missing") is False
        assert harness.embeddings.upserts == []

    async def test_provider_failure_returns_false(self):
        harness = IndexingHarness(["r1"], extract_errors={b"r1": ProviderUnavailableError("down")})

        assert await harness.service.store_face_embedding("r1") is False

    async def test_no_face_returns_false(self):
        harness = IndexingHarness(["r1"])
        harness.images.images[photo_url("r1")] = b"blank"

        assert await harness.service.store_face_embedding("r1") is False

    async def test_requires_active_provider(self):
        harness = IndexingHarness(["r1"], active=False)

        with pytest.raises(NoActiveProviderError):
            await harness.service.store_face_embedding("r1")


class TestRegenerateAll:
    """Test suite for FaceIndexingService.regenerate_all."""

    async def test_failures_do_not_affect_siblings(self):
        """Should succeed for N - M references when M of them fail."""
        ids = [f"r{i}" for i in range(7)]
        harness = IndexingHarness(ids, extract_errors={
            b"r2": ProviderUnavailableError("timeout"),
            b"r5": ProviderUnavailableError("timeout"),
        })

        report = await harness.service.regenerate_all()

        assert report.success == 5
        assert report.failed == 2
        assert report.total == 7
        assert sorted(harness.embeddings.records) == ["r0", "r1", "r3", "r4", "r6"]
        assert "r2: timeout" in report.errors
        assert "r5: timeout" in report.errors

    async def test_approval_errors_are_deduplicated(self):
        ids = ["r1", "r2", "r3", "r4"]
        approval = FeatureRequiresApprovalError("approval required", provider="custom")
        harness = IndexingHarness(ids, extract_errors={rid.encode(): approval for rid in ids})

        report = await harness.service.regenerate_all()

        assert report.failed == 4
        assert report.errors == [approval_error_summary("custom")]

    async def test_batches_sleep_between_but_not_after(self):
        harness = IndexingHarness([f"r{i}" for i in range(12)], batch_size=5)

        report = await harness.service.regenerate_all()

        assert report.success == 12
        assert harness.sleeps == [1.0, 1.0]

    async def test_single_batch_does_not_sleep(self):
        harness = IndexingHarness(["r1", "r2"], batch_size=5)

        await harness.service.regenerate_all()

        assert harness.sleeps == []

    async def test_concurrency_is_bounded(self):
        harness = IndexingHarness([f"r{i}" for i in range(10)], delay=0.01, batch_size=10, concurrency=3)

        await harness.service.regenerate_all()

        assert harness.provider.max_in_flight == 3

    async def test_fails_fast_without_active_provider(self):
        harness = IndexingHarness(["r1"], active=False)

        with pytest.raises(NoActiveProviderError):
            await harness.service.regenerate_all()

        assert harness.images.loads == []
        assert harness.embeddings.upserts == []

    async def test_regeneration_is_idempotent(self):
        harness = IndexingHarness(["r1", "r2"])

        await harness.service.regenerate_all()
        first = {rid: r.face_service_id for rid, r in harness.embeddings.records.items()}
        await harness.service.regenerate_all()
        second = {rid: r.face_service_id for rid, r in harness.embeddings.records.items()}

        assert first == second
        assert len(harness.embeddings.records) == 2
        assert harness.provider.released == []

    async def test_releases_replaced_identifiers(self):
        """Should release the identifier a regenerated reference no longer uses."""
        harness = IndexingHarness(["r1", "r2"])
        await harness.service.regenerate_all()
        harness.images.images[photo_url("r1")] = b"r1-new"

        await harness.service.regenerate_all()

        assert harness.embeddings.records["r1"].face_service_id == "face-r1-new"
        assert harness.provider.released == [FaceId(provider=ProviderType.CUSTOM, value="face-r1")]
