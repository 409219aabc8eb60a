#!/usr/bin/env python3
"""
Tests for BackendClient: status mapping and the JSON endpoints.
"""

import base64
import datetime as dt
import json

import httpx
import pytest

from finassist.client import BackendClient
from finassist.exceptions import QuotaExceededError, RateLimitError, TransportError
from finassist.finance import Transaction


class TestConstruction:
    def test_missing_parameter_fails_fast(self, backend_config):
        config = {k: v for k, v in backend_config.items() if k != "tts_path"}
        with pytest.raises(ValueError, match="tts_path"):
            BackendClient(config, "test-key")


class TestTextToSpeech:
    @pytest.mark.asyncio
    async def test_returns_audio_and_sends_voice(self, make_backend):
        captured = {}
        audio = base64.b64encode(b"ID3fake-mp3").decode()

        def handler(request):
            captured["path"] = request.url.path
            captured["body"] = json.loads(request.content)
            return httpx.Response(200, json={"audioContent": audio})

        async with make_backend(handler) as client:
            result = await client.text_to_speech("Olá", voice_id="voice-1")

        assert result.audio_content == audio
        assert captured["path"] == "/functions/v1/text-to-speech"
        assert captured["body"] == {"text": "Olá", "voiceId": "voice-1"}

    @pytest.mark.asyncio
    async def test_blank_text_is_rejected_before_any_request(self, make_backend):
        requests = []

        def handler(request):
            requests.append(request)
            return httpx.Response(200, json={})

        async with make_backend(handler) as client:
            with pytest.raises(ValueError, match="Text is required"):
                await client.text_to_speech("  ")
        assert requests == []

    @pytest.mark.asyncio
    async def test_error_field_in_body(self, make_backend):
        async with make_backend(
            lambda request: httpx.Response(200, json={"error": "voice not found"})
        ) as client:
            with pytest.raises(TransportError, match="voice not found"):
                await client.text_to_speech("Olá")


class TestStatusMapping:
    @pytest.mark.asyncio
    async def test_rate_limit_carries_retry_after(self, make_backend):
        async with make_backend(
            lambda request: httpx.Response(
                429, headers={"retry-after": "30"}, json={"error": "Slow down"}
            )
        ) as client:
            with pytest.raises(RateLimitError) as exc_info:
                await client.categorize_expense("Uber", 32.0)

        assert exc_info.value.retry_after == 30.0
        assert exc_info.value.status_code == 429
        assert str(exc_info.value) == "Slow down"

    @pytest.mark.asyncio
    async def test_quota_default_message(self, make_backend):
        async with make_backend(lambda request: httpx.Response(402)) as client:
            with pytest.raises(QuotaExceededError, match="Insufficient credits"):
                await client.categorize_expense("Uber", 32.0)

    @pytest.mark.asyncio
    async def test_other_status_is_transport_error(self, make_backend):
        async with make_backend(
            lambda request: httpx.Response(503, text="upstream unavailable")
        ) as client:
            with pytest.raises(TransportError) as exc_info:
                await client.categorize_expense("Uber", 32.0)

        assert exc_info.value.status_code == 503
        assert "upstream unavailable" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_network_error_is_wrapped(self, make_backend):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        async with make_backend(handler) as client:
            with pytest.raises(TransportError, match="HTTP error: refused"):
                await client.categorize_expense("Uber", 32.0)

    @pytest.mark.asyncio
    async def test_non_json_body(self, make_backend):
        async with make_backend(
            lambda request: httpx.Response(200, text="<html>")
        ) as client:
            with pytest.raises(TransportError, match="Unexpected response format"):
                await client.categorize_expense("Uber", 32.0)


class TestCategorizeAndInsights:
    @pytest.mark.asyncio
    async def test_categorize_expense(self, make_backend):
        captured = {}

        def handler(request):
            captured["body"] = json.loads(request.content)
            return httpx.Response(
                200,
                json={"category": "Transport", "subcategory": "Ride", "confidence": 0.92},
            )

        async with make_backend(handler) as client:
            result = await client.categorize_expense("Uber to work", 32.5)

        assert captured["body"] == {"title": "Uber to work", "amount": 32.5}
        assert result.category == "Transport"
        assert result.subcategory == "Ride"
        assert result.confidence == pytest.approx(0.92)

    @pytest.mark.asyncio
    async def test_generate_insights_reads_camel_case_report(self, make_backend):
        captured = {}

        def handler(request):
            captured["body"] = json.loads(request.content)
            return httpx.Response(200, json={"insights": {
                "analysisType": "monthly",
                "analysisTitle": "January",
                "analysisSubtitle": "Spending under control",
                "healthScore": 78,
                "status": "good",
                "insights": ["Food is your largest expense"],
                "categoryAnalysis": [
                    {"category": "Food", "percentage": 34.5, "status": "attention"}
                ],
                "recommendations": ["Cook at home twice a week"],
            }})

        rent = Transaction(
            id="t-1", title="Rent", amount=1500, type="expense",
            category="Housing", date=dt.date(2025, 1, 10),
        )
        async with make_backend(handler) as client:
            report = await client.generate_insights([rent], 3280.0)

        assert captured["body"]["currentBalance"] == 3280.0
        assert captured["body"]["transactions"][0]["id"] == "t-1"
        assert report.health_score == 78
        assert report.analysis_title == "January"
        assert report.category_analysis[0].status == "attention"
        assert report.recommendations == ["Cook at home twice a week"]


class TestRecommendations:
    RENT = Transaction(
        id="t-1", title="Rent", amount=1500, type="expense",
        category="Housing", date=dt.date(2025, 1, 10),
    )

    @pytest.mark.asyncio
    async def test_generate_recommendations(self, make_backend):
        captured = {}

        def handler(request):
            captured["path"] = request.url.path
            captured["body"] = json.loads(request.content)
            return httpx.Response(200, json={"recommendations": [
                {
                    "title": "Cook at home",
                    "description": "Delivery is 20% of your spending",
                    "impact": "high",
                    "action": "Plan three home meals a week",
                },
                {"title": "Review subscriptions"},
            ]})

        async with make_backend(handler) as client:
            recommendations = await client.generate_recommendations([self.RENT], 3280.0)

        assert captured["path"] == "/functions/v1/generate-recommendations"
        assert captured["body"]["currentBalance"] == 3280.0
        assert captured["body"]["transactions"][0]["id"] == "t-1"
        assert [r.title for r in recommendations] == [
            "Cook at home", "Review subscriptions",
        ]
        assert recommendations[0].impact == "high"
        assert recommendations[0].action == "Plan three home meals a week"
        assert recommendations[1].impact == "medium"
        assert recommendations[1].description == ""

    @pytest.mark.asyncio
    async def test_missing_list_means_no_recommendations(self, make_backend):
        async with make_backend(lambda request: httpx.Response(200, json={})) as client:
            assert await client.generate_recommendations([self.RENT], 0.0) == []

    @pytest.mark.asyncio
    async def test_quota_and_rate_limit_are_mapped(self, make_backend):
        async with make_backend(lambda request: httpx.Response(402)) as client:
            with pytest.raises(QuotaExceededError):
                await client.generate_recommendations([self.RENT], 0.0)

        async with make_backend(lambda request: httpx.Response(429)) as client:
            with pytest.raises(RateLimitError):
                await client.generate_recommendations([self.RENT], 0.0)

    @pytest.mark.asyncio
    async def test_unknown_impact_is_rejected(self, make_backend):
        async with make_backend(
            lambda request: httpx.Response(
                200, json={"recommendations": [{"title": "x", "impact": "huge"}]}
            )
        ) as client:
            with pytest.raises(TransportError, match="Unexpected recommendations"):
                await client.generate_recommendations([self.RENT], 0.0)
