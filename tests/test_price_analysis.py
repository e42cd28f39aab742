import json
import unittest
from decimal import Decimal
from unittest.mock import patch

import pytest

from app.pricing import analysis
from app.pricing.openai_client import OpenAIError, parse_json_object


def _provider_response(payload):
    return json.dumps(payload), {"latency_ms": 12}


class AnalyzePricesTests(unittest.TestCase):
    @patch("app.pricing.analysis.request_chat_completion")
    def test_valid_response_is_used(self, mock_completion):
        mock_completion.return_value = _provider_response(
            {
                "averagePrice": 11.9,
                "priceRange": {"min": 9.5, "max": 14.0},
                "marketAnalysis": "Preco compativel com o mercado.",
                "recommendations": ["Negociar frete"],
                "confidence": 0.8,
                "sources": ["Painel de Precos"],
            }
        )
        result = analysis.analyze_prices("Papel A4", 1000, Decimal("12.50"))
        self.assertEqual(result.averagePrice, 11.9)
        self.assertEqual(result.priceRange.min, 9.5)
        self.assertEqual(result.priceRange.max, 14.0)
        self.assertEqual(result.recommendations, ["Negociar frete"])
        self.assertEqual(result.confidence, 0.8)
        self.assertEqual(result.sources, ["Painel de Precos"])
        _, kwargs = mock_completion.call_args
        self.assertTrue(kwargs["json_mode"])

    @patch("app.pricing.analysis.request_chat_completion")
    def test_provider_failure_returns_fallback(self, mock_completion):
        mock_completion.side_effect = OpenAIError("timeout")
        result = analysis.analyze_prices("Papel A4", 1000, Decimal("12.50"))
        self.assertEqual(result.averagePrice, 12.5)
        self.assertAlmostEqual(result.priceRange.min, 10.0)
        self.assertAlmostEqual(result.priceRange.max, 15.0)
        self.assertEqual(result.confidence, 0.3)
        self.assertEqual(result.sources, ["Estimativa baseada em formula padrao"])
        self.assertEqual(len(result.recommendations), 3)

    @patch("app.pricing.analysis.request_chat_completion")
    def test_malformed_response_returns_fallback(self, mock_completion):
        mock_completion.return_value = ("isto nao e json", {})
        result = analysis.analyze_prices("Caneta", 10, 2)
        self.assertEqual(result.confidence, analysis.FALLBACK_CONFIDENCE)
        self.assertEqual(result.marketAnalysis, analysis.FALLBACK_MARKET_ANALYSIS)

    def test_missing_api_key_returns_fallback_without_network(self):
        with patch("app.pricing.openai_client.httpx.Client") as mock_client:
            result = analysis.analyze_prices("Caneta", 10, 2)
        mock_client.assert_not_called()
        self.assertEqual(result.confidence, analysis.FALLBACK_CONFIDENCE)


class CoerceAnalysisTests(unittest.TestCase):
    def test_fallback_sources_label_is_localised(self):
        self.assertEqual(analysis.fallback_analysis(5).sources, ["Estimativa baseada em formula padrao"])

    def test_missing_fields_get_defaults(self):
        result = analysis.coerce_analysis({}, 10)
        self.assertEqual(result.averagePrice, 10.0)
        self.assertAlmostEqual(result.priceRange.min, 8.0)
        self.assertAlmostEqual(result.priceRange.max, 12.0)
        self.assertEqual(result.marketAnalysis, analysis.DEFAULT_MARKET_ANALYSIS)
        self.assertEqual(result.recommendations, [])
        self.assertEqual(result.confidence, analysis.DEFAULT_CONFIDENCE)
        self.assertEqual(result.sources, analysis.DEFAULT_SOURCES)

    def test_non_positive_numbers_count_as_missing(self):
        result = analysis.coerce_analysis({"averagePrice": -3, "priceRange": {"min": 0, "max": "abc"}}, 10)
        self.assertEqual(result.averagePrice, 10.0)
        self.assertAlmostEqual(result.priceRange.min, 8.0)
        self.assertAlmostEqual(result.priceRange.max, 12.0)

    def test_inverted_range_is_swapped(self):
        result = analysis.coerce_analysis({"priceRange": {"min": 20, "max": 5}}, 10)
        self.assertEqual((result.priceRange.min, result.priceRange.max), (5.0, 20.0))

    def test_confidence_is_normalised(self):
        self.assertEqual(analysis.coerce_analysis({"confidence": 85}, 10).confidence, 0.85)
        self.assertEqual(analysis.coerce_analysis({"confidence": 500}, 10).confidence, 1.0)
        self.assertEqual(analysis.coerce_analysis({"confidence": "alta"}, 10).confidence, 0.5)
        self.assertEqual(analysis.coerce_analysis({"confidence": 1.5}, 10).confidence, 1.0)


@pytest.mark.parametrize(
    "raw",
    [
        '{"averagePrice": 1}',
        'Segue a analise:\n```json\n{"averagePrice": 1}\n```',
    ],
)
def test_parse_json_object_extracts_object(raw):
    assert parse_json_object(raw) == {"averagePrice": 1}


@pytest.mark.parametrize("raw", ["", "[1, 2]", "sem json"])
def test_parse_json_object_rejects_invalid(raw):
    with pytest.raises(OpenAIError):
        parse_json_object(raw)
