import logging
import math
from decimal import Decimal
from typing import Any, Optional, Union

from app.pricing.openai_client import parse_json_object, request_chat_completion
from app.pricing.schemas import PriceAnalysis, PriceRange

logger = logging.getLogger("cotacao.pricing")

RANGE_MIN_FACTOR = 0.8
RANGE_MAX_FACTOR = 1.2
FALLBACK_CONFIDENCE = 0.3
DEFAULT_CONFIDENCE = 0.5
DEFAULT_MARKET_ANALYSIS = "Analise nao disponivel"
DEFAULT_SOURCES = ["Analise baseada em dados de mercado"]
FALLBACK_MARKET_ANALYSIS = (
    "Nao foi possivel realizar analise de mercado no momento. "
    "Verifique se o preco esta adequado comparando com fornecedores similares."
)
FALLBACK_RECOMMENDATIONS = [
    "Consulte multiplos fornecedores",
    "Verifique precos em portais de transparencia",
    "Compare com licitacoes similares",
]
# localised "formula-based estimate" label
FALLBACK_SOURCES = ["Estimativa baseada em formula padrao"]

Number = Union[int, float, Decimal]


def _build_system_prompt() -> str:
    return (
        "Voce e um especialista em analise de precos para compras publicas no Brasil. "
        "Forneca analises precisas e baseadas em dados de mercado reais. "
        "Responda sempre com um unico objeto JSON valido."
    )


def _build_user_prompt(product: str, quantity: int, unit_price: float) -> str:
    return (
        "Analise o preco do seguinte produto para compra publica no Brasil:\n\n"
        f"Produto: {product}\n"
        f"Quantidade: {quantity} unidades\n"
        f"Preco unitario informado: R$ {unit_price:.2f}\n"
        f"Valor total: R$ {quantity * unit_price:.2f}\n\n"
        "Forneca:\n"
        "1. Preco medio de mercado para este produto\n"
        "2. Faixa de precos (minimo e maximo) tipica\n"
        "3. Analise se o preco esta adequado, alto ou baixo\n"
        "4. Recomendacoes para otimizacao\n"
        "5. Fontes ou referencias de mercado\n\n"
        "Estrutura JSON esperada:\n"
        "{\n"
        '  "averagePrice": numero (preco medio unitario),\n'
        '  "priceRange": {"min": numero, "max": numero},\n'
        '  "marketAnalysis": "texto",\n'
        '  "recommendations": ["texto"],\n'
        '  "confidence": numero de 0 a 1,\n'
        '  "sources": ["texto"]\n'
        "}"
    )


def _positive_number(value: Any) -> Optional[float]:
    if isinstance(value, bool) or value is None:
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(number) or number <= 0:
        return None
    return number


def _string_list(value: Any) -> Optional[list[str]]:
    if not isinstance(value, list):
        return None
    items = [str(item).strip() for item in value if item is not None and str(item).strip()]
    return items or None


def _confidence(value: Any) -> float:
    number = _positive_number(value)
    if number is None:
        return DEFAULT_CONFIDENCE
    if 2 <= number <= 100 and number.is_integer():
        # whole-number percentage, e.g. 85
        number = number / 100
    return min(max(number, 0.0), 1.0)


def fallback_analysis(unit_price: Number) -> PriceAnalysis:
    price = float(unit_price)
    return PriceAnalysis(
        averagePrice=price,
        priceRange=PriceRange(min=price * RANGE_MIN_FACTOR, max=price * RANGE_MAX_FACTOR),
        marketAnalysis=FALLBACK_MARKET_ANALYSIS,
        recommendations=list(FALLBACK_RECOMMENDATIONS),
        confidence=FALLBACK_CONFIDENCE,
        sources=list(FALLBACK_SOURCES),
    )


def coerce_analysis(data: dict, unit_price: Number) -> PriceAnalysis:
    """Converte a resposta do provedor em PriceAnalysis, preenchendo cada campo ausente ou invalido."""
    price = float(unit_price)
    raw_range = data.get("priceRange")
    if not isinstance(raw_range, dict):
        raw_range = {}
    low = _positive_number(raw_range.get("min")) or price * RANGE_MIN_FACTOR
    high = _positive_number(raw_range.get("max")) or price * RANGE_MAX_FACTOR
    if low > high:
        low, high = high, low

    market_analysis = data.get("marketAnalysis")
    if not isinstance(market_analysis, str) or not market_analysis.strip():
        market_analysis = DEFAULT_MARKET_ANALYSIS

    return PriceAnalysis(
        averagePrice=_positive_number(data.get("averagePrice")) or price,
        priceRange=PriceRange(min=low, max=high),
        marketAnalysis=market_analysis.strip(),
        recommendations=_string_list(data.get("recommendations")) or [],
        confidence=_confidence(data.get("confidence")),
        sources=_string_list(data.get("sources")) or list(DEFAULT_SOURCES),
    )


def analyze_prices(product: str, quantity: int, unit_price: Number) -> PriceAnalysis:
    price = float(unit_price)
    try:
        raw_text, meta = request_chat_completion(
            _build_system_prompt(),
            _build_user_prompt(product, quantity, price),
            temperature=0.3,
            json_mode=True,
        )
        analysis = coerce_analysis(parse_json_object(raw_text), price)
    except Exception as exc:
        logger.warning("analise de precos indisponivel, usando estimativa padrao: %s", exc)
        return fallback_analysis(price)
    logger.info(
        "analise de precos concluida product=%r confidence=%.2f latency_ms=%s",
        product[:60],
        analysis.confidence,
        meta.get("latency_ms"),
    )
    return analysis
