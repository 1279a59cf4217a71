from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from enum import Enum
from typing import Callable, Dict, Optional, Tuple

from .rates import FONTE_GLOBAL, FONTE_ITEM, resolve_override
from .schemas import AppliedBenefit, ItemConfiguration
from .utils import formatar_moeda, formatar_percentual

logger = logging.getLogger(__name__)


class BenefitKind(str, Enum):
    NENHUM = "nenhum"
    ISENCAO = "isencao"
    REDUCAO_BASE = "reducao-base"
    REDUCAO_ALIQUOTA_ORIGEM = "reducao-aliquota-origem"
    REDUCAO_ALIQUOTA_DESTINO = "reducao-aliquota-destino"
    DESCONHECIDO = "desconhecido"

    @classmethod
    def parse(cls, raw: Optional[str]) -> "BenefitKind":
        code = (raw or "").strip().lower()
        if not code:
            return cls.NENHUM
        try:
            return cls(code)
        except ValueError:
            return cls.DESCONHECIDO


DESCRICOES = {
    BenefitKind.NENHUM: "Sem benefício",
    BenefitKind.ISENCAO: "Isenção Completa",
    BenefitKind.REDUCAO_BASE: "Redução de Base de Cálculo",
    BenefitKind.REDUCAO_ALIQUOTA_ORIGEM: "Redução de Alíquota Origem",
    BenefitKind.REDUCAO_ALIQUOTA_DESTINO: "Redução de Alíquota Destino",
    BenefitKind.DESCONHECIDO: "Benefício não reconhecido",
}


# -------------------------
# Cálculo em andamento (imutável)
# -------------------------
@dataclass(frozen=True)
class CalculoParcial:
    cod_item: str
    base_original: float
    base: float
    aliq_origem: float
    aliq_destino: float
    aliq_fcp: float
    isento: bool = False
    beneficio: Optional[AppliedBenefit] = None
    memoria: Tuple[str, ...] = ()

    def com_memoria(self, *linhas: str) -> "CalculoParcial":
        return replace(self, memoria=self.memoria + linhas)


@dataclass(frozen=True)
class BenefitParams:
    kind: BenefitKind
    bruto: Optional[str] = None
    fonte: str = ""
    carga_efetiva_desejada: Optional[float] = None
    aliq_origem_efetiva: Optional[float] = None
    aliq_destino_efetiva: Optional[float] = None


def resolve_benefit(item_config: ItemConfiguration, global_config: ItemConfiguration) -> BenefitParams:
    """Benefício e parâmetros, cada campo resolvido item > global."""
    def campo(nome: str):
        return resolve_override(
            (FONTE_ITEM, getattr(item_config, nome)),
            (FONTE_GLOBAL, getattr(global_config, nome)),
        )

    # string vazia no item conta como "sem benefício" e não cai para o global
    beneficio = campo("beneficio")
    return BenefitParams(
        kind=BenefitKind.parse(beneficio.valor),
        bruto=beneficio.valor,
        fonte=beneficio.fonte,
        carga_efetiva_desejada=campo("carga_efetiva_desejada").valor,
        aliq_origem_efetiva=campo("aliq_origem_efetiva").valor,
        aliq_destino_efetiva=campo("aliq_destino_efetiva").valor,
    )


# -------------------------
# Handlers por tipo de benefício
# -------------------------
def _sem_beneficio(calc: CalculoParcial, params: BenefitParams) -> CalculoParcial:
    return calc


def _desconhecido(calc: CalculoParcial, params: BenefitParams) -> CalculoParcial:
    logger.warning("Benefício desconhecido %r para item %s; seguindo sem benefício", params.bruto, calc.cod_item)
    return calc.com_memoria(f"Benefício '{params.bruto}' não reconhecido: cálculo sem benefício")


def _rejeitar(calc: CalculoParcial, kind: BenefitKind, motivo: str) -> CalculoParcial:
    logger.info("Benefício %s rejeitado para item %s: %s", kind.value, calc.cod_item, motivo)
    return calc.com_memoria(f"{DESCRICOES[kind]} rejeitada: {motivo}. Valores mantidos sem benefício")


def _isencao(calc: CalculoParcial, params: BenefitParams) -> CalculoParcial:
    kind = BenefitKind.ISENCAO
    return replace(
        calc,
        isento=True,
        beneficio=AppliedBenefit(tipo=kind.value, descricao=DESCRICOES[kind]),
    ).com_memoria(
        "BENEFÍCIO ISENÇÃO: item isento de DIFAL e FCP",
        f"   Alíquotas desconsideradas: Origem {formatar_percentual(calc.aliq_origem)} | "
        f"Destino {formatar_percentual(calc.aliq_destino)} | FCP {formatar_percentual(calc.aliq_fcp)}",
    )


def _reducao_base(calc: CalculoParcial, params: BenefitParams) -> CalculoParcial:
    kind = BenefitKind.REDUCAO_BASE
    carga = params.carga_efetiva_desejada

    if carga is None or carga <= 0:
        return _rejeitar(calc, kind, f"carga efetiva inválida ({carga})")
    if calc.aliq_destino <= 0:
        return _rejeitar(calc, kind, f"alíquota destino {formatar_percentual(calc.aliq_destino)}")

    base_original = calc.base
    base_nova = (base_original * carga) / calc.aliq_destino
    percentual = ((base_original - base_nova) / base_original) * 100 if base_original else 0.0

    beneficio = AppliedBenefit(
        tipo=kind.value,
        descricao=DESCRICOES[kind],
        carga_efetiva_desejada=carga,
        base_original=base_original,
        base_nova=base_nova,
        percentual_reducao=round(percentual, 2),
    )
    return replace(calc, base=base_nova, beneficio=beneficio).com_memoria(
        f"REDUÇÃO BASE: {formatar_moeda(base_original)} → {formatar_moeda(base_nova)} "
        f"({formatar_percentual(percentual)} de redução)",
        f"   Carga efetiva desejada: {formatar_percentual(carga)}",
    )


def _reducao_aliquota(campo: str, kind: BenefitKind, rotulo: str) -> Callable[[CalculoParcial, BenefitParams], CalculoParcial]:
    def handler(calc: CalculoParcial, params: BenefitParams) -> CalculoParcial:
        nova = getattr(params, f"{campo}_efetiva")
        if nova is None or nova < 0:
            return _rejeitar(calc, kind, f"alíquota efetiva inválida ({nova})")

        original = getattr(calc, campo)
        beneficio = AppliedBenefit(
            tipo=kind.value,
            descricao=DESCRICOES[kind],
            aliq_original=original,
            aliq_nova=nova,
            reducao=original - nova,
        )
        return replace(calc, beneficio=beneficio, **{campo: nova}).com_memoria(
            f"REDUÇÃO ALÍQ. {rotulo}: {formatar_percentual(original)} → {formatar_percentual(nova)}"
        )

    return handler


BENEFIT_HANDLERS: Dict[BenefitKind, Callable[[CalculoParcial, BenefitParams], CalculoParcial]] = {
    BenefitKind.NENHUM: _sem_beneficio,
    BenefitKind.ISENCAO: _isencao,
    BenefitKind.REDUCAO_BASE: _reducao_base,
    BenefitKind.REDUCAO_ALIQUOTA_ORIGEM: _reducao_aliquota("aliq_origem", BenefitKind.REDUCAO_ALIQUOTA_ORIGEM, "ORIGEM"),
    BenefitKind.REDUCAO_ALIQUOTA_DESTINO: _reducao_aliquota("aliq_destino", BenefitKind.REDUCAO_ALIQUOTA_DESTINO, "DESTINO"),
    BenefitKind.DESCONHECIDO: _desconhecido,
}


def apply_benefit(calc: CalculoParcial, params: BenefitParams) -> CalculoParcial:
    """Aplica o benefício antes do cálculo legal. Nunca altera `calc`."""
    return BENEFIT_HANDLERS[params.kind](calc, params)
