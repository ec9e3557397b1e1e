"""Grounding document rendering.

Everything here is a pure function of its inputs: the same business snapshot,
records, reply settings and ``now`` always render byte-identical text. Record
order is the order the repository returned them in (creation order).
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from datetime import datetime
from decimal import Decimal

from ..business.models import (
    BusinessRecords,
    BusinessSnapshot,
    CatalogItem,
    PolicyItem,
    PromotionItem,
    as_utc,
)
from ..config import DEFAULT_RESPONSE_STYLE, ReplySettings

NOT_INFORMED = "Não informado"
DEFAULT_PERSONALITY = "Assistente amigável e prestativo"


class StyleDirectiveStore:
    """Resolve the style directive for a ``response_style`` value."""

    _DEFAULT_DIRECTIVES: Mapping[str, str] = {
        "concise": "Seja conciso e direto nas respostas, use poucas palavras.",
        "balanced": "Mantenha um equilíbrio entre clareza e completude nas respostas.",
        "detailed": "Forneça respostas detalhadas e completas, explicando bem cada ponto.",
    }

    def __init__(self, extra_directives: Mapping[str, str] | None = None):
        self._directives: dict[str, str] = dict(self._DEFAULT_DIRECTIVES)
        if extra_directives:
            self._directives.update({k.lower(): v for k, v in extra_directives.items()})

    def resolve(self, response_style: str | None) -> str:
        """Unknown or empty styles fall back to the balanced directive."""

        key = (response_style or DEFAULT_RESPONSE_STYLE).strip().lower()
        return self._directives.get(key) or self._directives[DEFAULT_RESPONSE_STYLE]


def format_money(value: Decimal | float | int) -> str:
    return f"{Decimal(str(value)):.2f}"


def format_number(value: Decimal | float | int) -> str:
    """Render ``10.00`` as ``10`` and ``12.50`` as ``12.5``."""

    normalized = Decimal(str(value)).normalize()
    return format(normalized, "f")


def render_catalog_line(index: int, item: CatalogItem) -> str:
    line = f"{index}. {item.name}"
    if item.description:
        line += f" - {item.description}"
    if item.price is not None:
        line += f" | Preço: R$ {format_money(item.price)}"
    if item.stock is not None:
        line += f" | Estoque: {item.stock} unidades"
    if item.category:
        line += f" | Categoria: {item.category}"
    return line


def render_policy_line(index: int, policy: PolicyItem) -> str:
    return f"{index}. {policy.title} ({policy.type}): {policy.description}"


def render_promotion_line(index: int, promotion: PromotionItem) -> str:
    line = f"{index}. {promotion.title}: {promotion.description}"
    if promotion.discount_percentage is not None:
        line += f" ({format_number(promotion.discount_percentage)}% de desconto)"
    if promotion.discount_amount is not None:
        line += f" (R$ {format_money(promotion.discount_amount)} de desconto)"
    if promotion.valid_until is not None:
        line += f" | Válida até: {as_utc(promotion.valid_until):%d/%m/%Y}"
    return line


def _section(title: str, lines: Sequence[str], empty: str) -> list[str]:
    return [title, *(lines or [empty])]


def render_system_prompt(
    business: BusinessSnapshot,
    records: BusinessRecords,
    settings: ReplySettings,
    *,
    now: datetime,
    styles: StyleDirectiveStore | None = None,
) -> str:
    """Render the grounding document given to the completion backend."""

    styles = styles or StyleDirectiveStore()
    promotions = [p for p in records.promotions if p.is_valid_at(now)]

    parts: list[str] = [
        f"Você é {business.ai_name}, assistente virtual da empresa {business.name}.",
        "",
        "INFORMAÇÕES DA EMPRESA:",
        f"- Nome: {business.name}",
        f"- Descrição: {business.description or NOT_INFORMED}",
        f"- Setor: {business.industry or NOT_INFORMED}",
        f"- Tom de voz: {business.tone}",
        f"- Personalidade: {business.ai_personality or DEFAULT_PERSONALITY}",
        f"- Data de referência: {as_utc(now):%d/%m/%Y}",
        "",
    ]
    parts += _section(
        f"PRODUTOS E SERVIÇOS DISPONÍVEIS ({len(records.catalog)} itens):",
        [render_catalog_line(i, item) for i, item in enumerate(records.catalog, start=1)],
        "Nenhum produto cadastrado no momento.",
    )
    parts.append("")
    parts += _section(
        f"POLÍTICAS DA EMPRESA ({len(records.policies)} políticas):",
        [render_policy_line(i, p) for i, p in enumerate(records.policies, start=1)],
        "Nenhuma política específica cadastrada.",
    )
    parts.append("")
    parts += _section(
        f"PROMOÇÕES ATIVAS ({len(promotions)} promoções):",
        [render_promotion_line(i, p) for i, p in enumerate(promotions, start=1)],
        "Nenhuma promoção ativa no momento.",
    )
    parts += [
        "",
        "INSTRUÇÕES COMPORTAMENTAIS:",
        f"- {styles.resolve(settings.response_style)}",
        f"- Responda sempre como {business.ai_name}, mantendo o tom {business.tone}",
        "- Foque em ajudar o cliente e gerar vendas/leads",
        "- Se perguntarem sobre preços, consulte a lista de produtos acima",
        "- Para políticas específicas, consulte as políticas cadastradas acima",
        "- Destaque promoções ativas quando relevante",
        "- Se não souber algo específico, seja honesto e direcione para os produtos/serviços disponíveis",
    ]
    if settings.enable_buttons:
        parts.append("- Quando fizer sentido, ofereça opções numeradas para o cliente escolher")
    parts += [
        "- Sempre termine incentivando uma ação (compra, mais informações, contato, etc.)",
        "",
        "IMPORTANTE: Use APENAS as informações reais fornecidas acima sobre a empresa, "
        "produtos, políticas e promoções. Não invente informações.",
    ]
    return "\n".join(parts)


__all__ = [
    "StyleDirectiveStore",
    "format_money",
    "format_number",
    "render_catalog_line",
    "render_policy_line",
    "render_promotion_line",
    "render_system_prompt",
]
