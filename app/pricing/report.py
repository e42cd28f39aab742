from __future__ import annotations

import logging
from dataclasses import dataclass

from app.pricing.analysis import Number
from app.pricing.openai_client import request_chat_completion
from app.pricing.schemas import PriceAnalysis

logger = logging.getLogger("cotacao.pricing")

ABOVE_AVERAGE = "above average"
BELOW_AVERAGE = "below average"
WITHIN_AVERAGE = "within average"
POSITION_THRESHOLD_PERCENT = 10

POSITION_LABELS = {
    ABOVE_AVERAGE: "ACIMA DA MEDIA",
    BELOW_AVERAGE: "ABAIXO DA MEDIA",
    WITHIN_AVERAGE: "DENTRO DA MEDIA",
}


@dataclass(frozen=True)
class ReportFigures:
    total_value: float
    average_total: float
    difference: float
    percent_difference: float


def compute_report_figures(quantity: int, unit_price: Number, analysis: PriceAnalysis) -> ReportFigures:
    total_value = quantity * float(unit_price)
    average_total = quantity * analysis.averagePrice
    difference = total_value - average_total
    percent = (difference / average_total) * 100 if average_total else 0.0
    return ReportFigures(
        total_value=total_value,
        average_total=average_total,
        difference=difference,
        percent_difference=percent,
    )


def classify_price_position(percent_difference: float) -> str:
    if percent_difference > POSITION_THRESHOLD_PERCENT:
        return ABOVE_AVERAGE
    if percent_difference < -POSITION_THRESHOLD_PERCENT:
        return BELOW_AVERAGE
    return WITHIN_AVERAGE


def _bullets(items: list[str]) -> str:
    return "\n".join(f"- {item}" for item in items) or "- Nenhuma"


def _build_system_prompt() -> str:
    return (
        "Voce e um especialista em elaboracao de relatorios para compras publicas. "
        "Gere relatorios tecnicos, detalhados e adequados para processos licitatorios."
    )


def _build_user_prompt(
    product: str,
    quantity: int,
    unit_price: float,
    analysis: PriceAnalysis,
    tenant_name: str,
    figures: ReportFigures,
) -> str:
    return (
        "Gere um relatorio completo de cotacao para compra publica com os seguintes dados:\n\n"
        "DADOS DA COTACAO:\n"
        f"- Produto: {product}\n"
        f"- Quantidade: {quantity} unidades\n"
        f"- Preco unitario: R$ {unit_price:.2f}\n"
        f"- Valor total: R$ {figures.total_value:.2f}\n"
        f"- Municipio: {tenant_name}\n\n"
        "ANALISE DE PRECOS:\n"
        f"- Preco medio de mercado: R$ {analysis.averagePrice:.2f}\n"
        f"- Valor total medio: R$ {figures.average_total:.2f}\n"
        f"- Diferenca: R$ {figures.difference:.2f} ({figures.percent_difference:.1f}%)\n"
        f"- Faixa de precos: R$ {analysis.priceRange.min:.2f} - R$ {analysis.priceRange.max:.2f}\n"
        f"- Confianca da analise: {analysis.confidence * 100:.0f}%\n\n"
        "ANALISE DE MERCADO:\n"
        f"{analysis.marketAnalysis}\n\n"
        "RECOMENDACOES:\n"
        f"{_bullets(analysis.recommendations)}\n\n"
        "Gere um relatorio executivo estruturado e profissional adequado para documentacao "
        "de processo licitatorio."
    )


def render_fallback_report(
    product: str,
    quantity: int,
    unit_price: Number,
    analysis: PriceAnalysis,
    tenant_name: str,
    figures: ReportFigures,
) -> str:
    position = classify_price_position(figures.percent_difference)
    return (
        "RELATORIO DE COTACAO\n\n"
        "DADOS BASICOS:\n"
        f"- Produto: {product}\n"
        f"- Quantidade: {quantity} unidades\n"
        f"- Preco unitario: R$ {float(unit_price):.2f}\n"
        f"- Valor total: R$ {figures.total_value:.2f}\n"
        f"- Municipio: {tenant_name}\n\n"
        "ANALISE DE PRECOS:\n"
        f"- Preco medio de mercado: R$ {analysis.averagePrice:.2f}\n"
        f"- Diferenca em relacao a media: R$ {figures.difference:.2f} ({figures.percent_difference:.1f}%)\n"
        f"- Situacao: {POSITION_LABELS[position]} ({position})\n\n"
        "RECOMENDACOES:\n"
        f"{_bullets(analysis.recommendations)}\n\n"
        "OBSERVACOES:\n"
        f"{analysis.marketAnalysis}\n"
    )


def generate_quotation_report(
    product: str,
    quantity: int,
    unit_price: Number,
    analysis: PriceAnalysis,
    tenant_name: str,
) -> str:
    figures = compute_report_figures(quantity, unit_price, analysis)
    try:
        text, _ = request_chat_completion(
            _build_system_prompt(),
            _build_user_prompt(product, quantity, float(unit_price), analysis, tenant_name, figures),
            temperature=0.2,
        )
    except Exception as exc:
        logger.warning("relatorio indisponivel, usando modelo padrao: %s", exc)
        return render_fallback_report(product, quantity, unit_price, analysis, tenant_name, figures)
    if not text.strip():
        return render_fallback_report(product, quantity, unit_price, analysis, tenant_name, figures)
    return text.strip()
