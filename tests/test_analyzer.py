"""Tests for the document analysis request/response contract."""
from __future__ import annotations

import asyncio
import json
from unittest.mock import AsyncMock, patch

import httpx
import openai
import pytest

from equicheck import analyzer
from equicheck.errors import (
    AnalysisError,
    AuthError,
    ConfigurationError,
    EmptyDocument,
    EmptyResponse,
    MalformedResponse,
    RateLimited,
    ServiceUnavailable,
    UnknownError,
)
from equicheck.prompts import SYSTEM_INSTRUCTION

BUY = b"%PDF-1.7 buy side diligence report"
SELL = b"%PDF-1.7 sell side information memorandum"


def _api_error(cls, status: int, message: str):
    request = httpx.Request("POST", "https://example.openai.azure.com/openai/deployments/x/chat/completions")
    response = httpx.Response(status, request=request)
    return cls(message, response=response, body=None)


async def _run(raw):
    with patch("equicheck.llm.structured_chat", new_callable=AsyncMock, return_value=raw) as mock_chat:
        result = await analyzer.analyze(BUY, SELL, "buy.pdf", "sell.pdf")
    return result, mock_chat


class TestAnalyzeSuccess:
    @pytest.mark.asyncio
    async def test_assembles_result(self, findings):
        result, _ = await _run(json.dumps(findings))
        assert result.buy_side_file_name == "buy.pdf"
        assert result.sell_side_file_name == "sell.pdf"
        assert result.risk_score == 85
        assert result.agreement_score == 30
        assert result.key_risks == findings["keyRisks"]
        assert result.discrepancies[0].category == "Legal"
        assert result.discrepancies[0].severity == "Critical"
        assert result.discrepancies[1].buy_side_claim == "Normalised EBITDA of EUR 8.1m."

    @pytest.mark.asyncio
    async def test_ids_unique_and_timestamps_non_decreasing(self, findings):
        results = []
        for _ in range(5):
            result, _ = await _run(json.dumps(findings))
            results.append(result)
        assert len({r.id for r in results}) == 5
        timestamps = [r.timestamp for r in results]
        assert timestamps == sorted(timestamps)

    @pytest.mark.asyncio
    async def test_model_cannot_override_local_fields(self, findings):
        findings.update({"id": "from-model", "timestamp": 1, "buySideFileName": "other.pdf"})
        result, _ = await _run(json.dumps(findings))
        assert result.id != "from-model"
        assert result.timestamp > 1
        assert result.buy_side_file_name == "buy.pdf"

    @pytest.mark.asyncio
    async def test_timestamp_is_current_time(self, findings):
        with patch("equicheck.analyzer.now_ms", return_value=1_700_000_000_000):
            result, _ = await _run(json.dumps(findings))
        assert result.timestamp == 1_700_000_000_000
        assert not hasattr(analyzer, "_last_timestamp")

    @pytest.mark.asyncio
    async def test_float_scores_rounded(self, findings):
        findings["riskScore"] = 72.6
        result, _ = await _run(json.dumps(findings))
        assert result.risk_score == 73

    @pytest.mark.asyncio
    async def test_request_carries_documents_and_schema(self, findings):
        _, mock_chat = await _run(json.dumps(findings))
        system_prompt, content, response_format = mock_chat.await_args.args
        assert system_prompt == SYSTEM_INSTRUCTION
        assert content[0]["text"] == "Document 1: Buy Side Report (buy.pdf)"
        assert content[1]["file"]["filename"] == "buy.pdf"
        assert content[1]["file"]["file_data"].startswith("data:application/pdf;base64,")
        assert content[2]["text"] == "Document 2: Sell Side Report (sell.pdf)"
        assert content[3]["file"]["filename"] == "sell.pdf"
        assert response_format["type"] == "json_schema"
        assert response_format["json_schema"]["strict"] is True


class TestOutOfContractValues:
    """Scores and labels outside the documented sets are kept, not rejected.

    Whether to enforce 0-100 scores and the closed category/severity sets is
    still undecided upstream; for now they are only reported as warnings.
    """

    @pytest.mark.asyncio
    async def test_out_of_range_values_pass_through(self, findings, caplog):
        findings["riskScore"] = 140
        findings["discrepancies"][0]["category"] = "Tax"
        findings["discrepancies"][0]["severity"] = "Severe"
        with caplog.at_level("WARNING", logger="equicheck.analyzer"):
            result, _ = await _run(json.dumps(findings))
        assert result.risk_score == 140
        assert result.discrepancies[0].category == "Tax"
        assert len(result.contract_warnings()) == 3
        assert "riskScore 140 is outside 0-100" in caplog.text


class TestResponseFailures:
    @pytest.mark.asyncio
    @pytest.mark.parametrize("raw", [None, "", "   \n"])
    async def test_empty_response(self, raw):
        with pytest.raises(EmptyResponse) as exc_info:
            await _run(raw)
        assert exc_info.value.kind == "empty_response"

    @pytest.mark.asyncio
    async def test_malformed_response_keeps_parse_detail(self):
        with pytest.raises(MalformedResponse) as exc_info:
            await _run('{"executiveSummary": "truncated...')
        assert exc_info.value.kind == "malformed_response"
        assert "Unterminated string" in exc_info.value.detail
        assert isinstance(exc_info.value.__cause__, json.JSONDecodeError)

    @pytest.mark.asyncio
    async def test_non_object_json_is_malformed(self):
        with pytest.raises(MalformedResponse) as exc_info:
            await _run("[1, 2, 3]")
        assert exc_info.value.detail == "got list"

    @pytest.mark.asyncio
    async def test_missing_required_field_is_malformed(self, findings):
        del findings["discrepancies"]
        with pytest.raises(MalformedResponse) as exc_info:
            await _run(json.dumps(findings))
        assert "discrepancies" in exc_info.value.detail

    @pytest.mark.asyncio
    async def test_empty_and_malformed_are_distinguishable(self):
        kinds = set()
        for raw in ("", "not json"):
            with pytest.raises(AnalysisError) as exc_info:
                await _run(raw)
            kinds.add(type(exc_info.value))
        assert kinds == {EmptyResponse, MalformedResponse}


class TestPreconditions:
    @pytest.mark.asyncio
    async def test_empty_document_rejected_before_request(self):
        with patch("equicheck.llm.structured_chat", new_callable=AsyncMock) as mock_chat:
            with pytest.raises(EmptyDocument):
                await analyzer.analyze(b"", SELL, "buy.pdf", "sell.pdf")
        mock_chat.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_configuration_error_passes_through(self):
        err = ConfigurationError("Configuration Error: endpoint missing")
        with patch("equicheck.llm.structured_chat", new_callable=AsyncMock, side_effect=err):
            with pytest.raises(ConfigurationError):
                await analyzer.analyze(BUY, SELL, "buy.pdf", "sell.pdf")


class TestErrorMapping:
    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "exc, expected",
        [
            (_api_error(openai.PermissionDeniedError, 403, "Forbidden"), AuthError),
            (_api_error(openai.AuthenticationError, 401, "Access denied due to invalid key"), AuthError),
            (_api_error(openai.RateLimitError, 429, "Too many requests"), RateLimited),
            (_api_error(openai.InternalServerError, 500, "Internal error"), ServiceUnavailable),
            (_api_error(openai.InternalServerError, 503, "Overloaded"), ServiceUnavailable),
            (RuntimeError("got status 403 from upstream"), AuthError),
            (RuntimeError("HTTP 429: slow down"), RateLimited),
            (RuntimeError("upstream said 503 Service Unavailable"), ServiceUnavailable),
            (RuntimeError("upstream said 500"), ServiceUnavailable),
        ],
    )
    async def test_transport_errors(self, exc, expected):
        with patch("equicheck.llm.structured_chat", new_callable=AsyncMock, side_effect=exc):
            with pytest.raises(expected) as exc_info:
                await analyzer.analyze(BUY, SELL, "buy.pdf", "sell.pdf")
        assert exc_info.value.__cause__ is exc

    @pytest.mark.asyncio
    async def test_unknown_error_keeps_original_message(self):
        exc = ConnectionError("Connection reset by peer")
        with patch("equicheck.llm.structured_chat", new_callable=AsyncMock, side_effect=exc):
            with pytest.raises(UnknownError) as exc_info:
                await analyzer.analyze(BUY, SELL, "buy.pdf", "sell.pdf")
        assert str(exc_info.value) == "Connection reset by peer"
        assert exc_info.value.original is exc

    def test_bad_request_is_unknown(self):
        exc = _api_error(openai.BadRequestError, 400, "Invalid file data")
        err = analyzer.classify_error(exc)
        assert isinstance(err, UnknownError)
        assert "Invalid file data" in str(err)


class TestNoTimeout:
    @pytest.mark.asyncio
    async def test_hung_model_call_is_not_timed_out(self):
        """analyze() applies no timeout of its own: a hung call blocks until the caller gives up."""
        never = asyncio.Event()

        async def hang(*args, **kwargs):
            await never.wait()

        with patch("equicheck.llm.structured_chat", side_effect=hang):
            with pytest.raises(asyncio.TimeoutError):
                await asyncio.wait_for(analyzer.analyze(BUY, SELL, "buy.pdf", "sell.pdf"), timeout=0.05)
