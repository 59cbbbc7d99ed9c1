"""Tests for the Amazon Rekognition provider."""
import asyncio
from contextlib import asynccontextmanager
from typing import Dict, List, Optional

import pytest
from botocore.exceptions import ClientError, EndpointConnectionError

from facesearch.core.exceptions import (
    IdentifierExpiredError,
    ImageDecodeError,
    NoFaceDetectedError,
    ProviderConfigInvalidError,
    ProviderUnavailableError,
)
from facesearch.domain.entities.face import FaceId
from facesearch.domain.entities.provider import ProviderType
from facesearch.services.recognition.aws_rekognition import AwsRekognitionProvider
from tests.fakes import make_config


def client_error(code: str, message: str = "failed", status: int = 400, operation: str = "SearchFaces"):
    return ClientError(
        {"Error": {"Code": code, "Message": message}, "ResponseMetadata": {"HTTPStatusCode": status}},
        operation
    )


class FakeRekognitionClient:
    """Minimal Rekognition client recording calls."""

    def __init__(self, matches: Optional[Dict[str, Dict[str, float]]] = None):
        self.matches = matches or {}
        self.index_calls: List[dict] = []
        self.search_calls: List[dict] = []
        self.delete_calls: List[dict] = []
        self.index_response: dict = {"FaceRecords": [{"Face": {"FaceId": "aws-face-1"}}]}
        self.error: Optional[Exception] = None
        self.delete_error: Optional[Exception] = None

    async def index_faces(self, **kwargs):
        self.index_calls.append(kwargs)
        if self.error is not None:
            raise self.error
        return self.index_response

    async def search_faces(self, **kwargs):
        self.search_calls.append(kwargs)
        await asyncio.sleep(0)
        if self.error is not None:
            raise self.error
        similarities = self.matches.get(kwargs["FaceId"], {})
        return {"FaceMatches": [
            {"Face": {"FaceId": face_id}, "Similarity": similarity}
            for face_id, similarity in similarities.items()
        ]}

    async def delete_faces(self, **kwargs):
        self.delete_calls.append(kwargs)
        if self.delete_error is not None:
            raise self.delete_error
        return {"DeletedFaces": kwargs["FaceIds"]}


@pytest.fixture
def fake_client() -> FakeRekognitionClient:
    return FakeRekognitionClient()


@pytest.fixture
def provider(monkeypatch, fake_client) -> AwsRekognitionProvider:
    config = make_config(ProviderType.AWS, aws_region="eu-west-1", aws_collection_id="people")
    provider = AwsRekognitionProvider(config)

    @asynccontextmanager
    async def get_client():
        yield fake_client

    monkeypatch.setattr(provider, "_get_client", get_client)
    return provider


def aws_face(value: str) -> FaceId:
    return FaceId(provider=ProviderType.AWS, value=value)


class TestAwsRekognitionProvider:
    """Test suite for AwsRekognitionProvider."""

    async def test_extract_indexes_single_face(self, provider, fake_client):
        face_id = await provider.extract(b"image-bytes")

        assert face_id == aws_face("aws-face-1")
        call = fake_client.index_calls[0]
        assert call["CollectionId"] == "people"
        assert call["MaxFaces"] == 1
        assert call["Image"] == {"Bytes": b"image-bytes"}

    async def test_extract_without_face_records(self, provider, fake_client):
        fake_client.index_response = {"FaceRecords": [], "UnindexedFaces": []}

        with pytest.raises(NoFaceDetectedError):
            await provider.extract(b"image-bytes")

    async def test_compare_reads_similarity_as_fraction(self, provider, fake_client):
        fake_client.matches = {"q": {"f1": 93.5}}

        assert await provider.compare(aws_face("q"), aws_face("f1")) == pytest.approx(0.935)

    async def test_unmatched_face_scores_zero(self, provider, fake_client):
        fake_client.matches = {"q": {"f1": 93.5}}

        assert await provider.compare(aws_face("q"), aws_face("f2")) == 0.0

    async def test_concurrent_compares_share_one_search(self, provider, fake_client):
        """Should search the collection once per searched face."""
        fake_client.matches = {"q": {"f1": 90.0, "f2": 85.0}}

        results = await asyncio.gather(
            provider.compare(aws_face("q"), aws_face("f1")),
            provider.compare(aws_face("q"), aws_face("f2")),
        )

        assert results == [pytest.approx(0.90), pytest.approx(0.85)]
        assert len(fake_client.search_calls) == 1
        assert fake_client.search_calls[0]["FaceMatchThreshold"] == 0.0

    async def test_freshly_indexed_face_is_searched_in_reverse(self, provider, fake_client):
        fake_client.matches = {"q": {"f1": 90.0}, "fresh": {"q": 88.0}}

        await provider.compare(aws_face("q"), aws_face("f1"))
        similarity = await provider.compare(aws_face("q"), aws_face("fresh"), b"photo")

        assert similarity == pytest.approx(0.88)
        assert [call["FaceId"] for call in fake_client.search_calls] == ["q", "fresh"]

    async def test_failed_search_is_not_cached(self, provider, fake_client):
        fake_client.error = client_error("ThrottlingException", status=400)
        with pytest.raises(ProviderUnavailableError):
            await provider.compare(aws_face("q"), aws_face("f1"))

        fake_client.error = None
        fake_client.matches = {"q": {"f1": 80.0}}
        assert await provider.compare(aws_face("q"), aws_face("f1")) == pytest.approx(0.8)

    async def test_unknown_face_id_is_expired(self, provider, fake_client):
        fake_client.error = client_error("InvalidParameterException", "Face id not found in collection")

        with pytest.raises(IdentifierExpiredError):
            await provider.compare(aws_face("q"), aws_face("f1"))

    @pytest.mark.parametrize("code,status,error", [
        ("ResourceNotFoundException", 400, ProviderConfigInvalidError),
        ("AccessDeniedException", 400, ProviderConfigInvalidError),
        ("UnrecognizedClientException", 400, ProviderConfigInvalidError),
        ("ProvisionedThroughputExceededException", 400, ProviderUnavailableError),
        ("InternalServerError", 500, ProviderUnavailableError),
        ("InvalidImageFormatException", 400, ImageDecodeError),
    ])
    async def test_extract_error_mapping(self, provider, fake_client, code, status, error):
        fake_client.error = client_error(code, status=status, operation="IndexFaces")

        with pytest.raises(error):
            await provider.extract(b"image-bytes")

    async def test_no_face_parameter_error(self, provider, fake_client):
        fake_client.error = client_error(
            "InvalidParameterException", "There are no faces in the image.", operation="IndexFaces"
        )

        with pytest.raises(NoFaceDetectedError):
            await provider.extract(b"image-bytes")

    async def test_connection_error_is_unavailable(self, provider, fake_client):
        fake_client.error = EndpointConnectionError(endpoint_url="https://rekognition.eu-west-1.amazonaws.com")

        with pytest.raises(ProviderUnavailableError):
            await provider.extract(b"image-bytes")

    async def test_released_faces_are_deleted_on_close(self, provider, fake_client):
        await provider.release(aws_face("q"))
        await provider.release(aws_face("old-ref"))
        await provider.release(aws_face("q"))

        assert fake_client.delete_calls == []
        await provider.aclose()

        assert fake_client.delete_calls == [{"CollectionId": "people", "FaceIds": ["old-ref", "q"]}]

    async def test_close_without_released_faces_deletes_nothing(self, provider, fake_client):
        await provider.release(FaceId(provider=ProviderType.AZURE, value="azure-face"))

        await provider.aclose()

        assert fake_client.delete_calls == []

    async def test_failed_delete_does_not_raise(self, provider, fake_client):
        fake_client.delete_error = client_error("ThrottlingException", operation="DeleteFaces")
        await provider.release(aws_face("q"))

        await provider.aclose()

        assert len(fake_client.delete_calls) == 1

    async def test_context_exit_deletes_released_query_face(self, provider, fake_client):
        """Should leave no searched face behind in the collection."""
        fake_client.matches = {"aws-face-1": {"f1": 91.0}}

        async with provider:
            query = await provider.extract(b"query-bytes")
            assert await provider.compare(query, aws_face("f1")) == pytest.approx(0.91)
            await provider.release(query)

        assert fake_client.delete_calls[0]["FaceIds"] == ["aws-face-1"]

    def test_requires_complete_key_pair(self):
        config = make_config(ProviderType.AWS, aws_access_key_id="AKIAEXAMPLE")

        with pytest.raises(ProviderConfigInvalidError):
            AwsRekognitionProvider(config)
