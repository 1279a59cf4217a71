from __future__ import annotations

from dataclasses import replace
from enum import Enum
from typing import Dict, List, Optional, Tuple

from .benefits import BenefitParams, CalculoParcial, apply_benefit
from .loader import JurisdictionRates, destinacao_cfop
from .rates import ResolvedRates
from .schemas import CalculationResult, FiscalItem, JurisdictionPair
from .utils import ensure_finite, formatar_moeda, formatar_percentual

SEPARADOR = "-" * 40
RODAPE = "=" * 40


class MetodoCalculo(str, Enum):
    BASE_UNICA = "base-unica"
    BASE_DUPLA = "base-dupla"
    AUTO = "auto"

    @classmethod
    def parse(cls, raw: Optional[str]) -> "MetodoCalculo":
        code = (raw or "").strip().lower()
        try:
            return cls(code)
        except ValueError:
            raise ValueError(
                f"Metodologia de cálculo inválida: {raw!r} (use base-unica, base-dupla ou auto)"
            ) from None

    @property
    def rotulo(self) -> str:
        return {"base-unica": "BASE ÚNICA", "base-dupla": "BASE DUPLA"}.get(self.value, self.value.upper())


def resolve_metodo(metodo: MetodoCalculo, destino: JurisdictionRates) -> MetodoCalculo:
    """`auto` usa a metodologia da UF de destino na tabela."""
    if metodo is not MetodoCalculo.AUTO:
        return metodo
    try:
        resolvido = MetodoCalculo.parse(destino.metodologia)
    except ValueError:
        return MetodoCalculo.BASE_DUPLA
    return MetodoCalculo.BASE_DUPLA if resolvido is MetodoCalculo.AUTO else resolvido


# -------------------------
# Fórmulas legais
# -------------------------
def calcular_base_unica(base: float, aliq_origem: float, aliq_destino: float) -> Dict[str, float]:
    icms_origem = base * (aliq_origem / 100)
    icms_destino = base * (aliq_destino / 100)
    return {
        "icms_origem": icms_origem,
        "icms_destino": icms_destino,
        "difal": max(0.0, icms_destino - icms_origem),
    }


def calcular_base_dupla(base: float, aliq_origem: float, aliq_destino: float) -> Dict[str, float]:
    if aliq_destino >= 100:
        raise ValueError(f"Alíquota destino {aliq_destino}% inviabiliza a base dupla")

    icms_interestadual = base * (aliq_origem / 100)
    # exclusão do ICMS interestadual e inclusão "por dentro" do ICMS interno
    base_calculo_1 = base - icms_interestadual
    base_calculo_2 = base_calculo_1 / (1 - aliq_destino / 100)
    icms_interno = base_calculo_2 * (aliq_destino / 100)

    return {
        "icms_interestadual": icms_interestadual,
        "base_calculo_1": base_calculo_1,
        "base_calculo_2": base_calculo_2,
        "icms_interno": icms_interno,
        "difal": max(0.0, icms_interno - icms_interestadual),
    }


def _passos_base_unica(calc: CalculoParcial, r: Dict[str, float]) -> List[str]:
    return [
        f"1. ICMS Origem: {formatar_moeda(r['icms_origem'])} "
        f"({formatar_moeda(calc.base)} × {formatar_percentual(calc.aliq_origem)})",
        f"2. ICMS Destino: {formatar_moeda(r['icms_destino'])} "
        f"({formatar_moeda(calc.base)} × {formatar_percentual(calc.aliq_destino)})",
        f"3. DIFAL: {formatar_moeda(r['difal'])}",
    ]


def _passos_base_dupla(calc: CalculoParcial, r: Dict[str, float]) -> List[str]:
    return [
        f"1. ICMS Interestadual: {formatar_moeda(r['icms_interestadual'])}",
        f"2. Base de Cálculo 1: {formatar_moeda(r['base_calculo_1'])}",
        f"3. Base de Cálculo 2: {formatar_moeda(r['base_calculo_2'])}",
        f"4. ICMS Interno: {formatar_moeda(r['icms_interno'])}",
        f"5. DIFAL: {formatar_moeda(r['difal'])}",
    ]


def _fcp_aplicavel(
    rates: ResolvedRates,
    metodo: MetodoCalculo,
    destino: JurisdictionRates,
) -> bool:
    # FCP informado manualmente (item/global) sempre vale
    if rates.fcp.explicito:
        return True
    return not (metodo is MetodoCalculo.BASE_DUPLA and not destino.fcp_base_dupla)


def _apurar(
    calc: CalculoParcial,
    rates: ResolvedRates,
    metodo: MetodoCalculo,
    destino: JurisdictionRates,
) -> Tuple[float, float, float, Tuple[str, ...]]:
    """DIFAL, FCP, alíquota FCP efetiva e os passos da memória de cálculo."""
    linhas: List[str] = []
    valor_difal = 0.0

    if calc.aliq_destino > calc.aliq_origem:
        if metodo is MetodoCalculo.BASE_UNICA:
            r = calcular_base_unica(calc.base, calc.aliq_origem, calc.aliq_destino)
            linhas.extend(_passos_base_unica(calc, r))
        else:
            r = calcular_base_dupla(calc.base, calc.aliq_origem, calc.aliq_destino)
            linhas.extend(_passos_base_dupla(calc, r))
        for nome, valor in r.items():
            ensure_finite(valor, nome)
        valor_difal = r["difal"]
    else:
        linhas.append(
            f"DIFAL = 0: sem diferencial de alíquota (destino {formatar_percentual(calc.aliq_destino)} "
            f"≤ origem {formatar_percentual(calc.aliq_origem)})"
        )

    aliq_fcp = calc.aliq_fcp
    if aliq_fcp > 0 and not _fcp_aplicavel(rates, metodo, destino):
        linhas.append(f"FCP não cobrado por {destino.uf} com base dupla")
        aliq_fcp = 0.0

    valor_fcp = 0.0
    if aliq_fcp > 0:
        valor_fcp = ensure_finite(calc.base * (aliq_fcp / 100), "valor_fcp")
        linhas.append(
            f"FCP: {formatar_moeda(valor_fcp)} ({formatar_moeda(calc.base)} × {formatar_percentual(aliq_fcp)})"
        )
    else:
        linhas.append(f"FCP: {formatar_moeda(0.0)}")

    return valor_difal, valor_fcp, aliq_fcp, tuple(linhas)


def calcular_item(
    item: FiscalItem,
    rates: ResolvedRates,
    beneficio: BenefitParams,
    pair: JurisdictionPair,
    destino: JurisdictionRates,
    metodo: MetodoCalculo,
) -> CalculationResult:
    """
    Calcula DIFAL e FCP de um item e monta a memória de cálculo.

    Levanta ValueError/ArithmeticError para dados malformados; quem chama
    transforma isso em resultado com erro.
    """
    base = item.resolver_base()
    if base < 0:
        raise ValueError(f"Base de cálculo negativa: {base}")

    calc = CalculoParcial(
        cod_item=item.cod_item,
        base_original=base,
        base=base,
        aliq_origem=rates.aliq_origem,
        aliq_destino=rates.aliq_destino,
        aliq_fcp=rates.aliq_fcp,
        memoria=(
            f"=== MEMÓRIA DE CÁLCULO - ITEM {item.cod_item} ===",
            f"Método: {metodo.rotulo}",
            f"UFs: {pair.origem} → {pair.destino}",
            f"CFOP: {item.cfop or 'N/A'}",
            f"Base de cálculo original: {formatar_moeda(base)}",
            f"Alíquotas: Origem {formatar_percentual(rates.aliq_origem)} ({rates.origem.fonte}) | "
            f"Destino {formatar_percentual(rates.aliq_destino)} ({rates.destino.fonte}) | "
            f"FCP {formatar_percentual(rates.aliq_fcp)} ({rates.fcp.fonte})",
        ),
    )

    calc = apply_benefit(calc, beneficio)
    valor_difal, valor_fcp, aliq_fcp, passos = _apurar(calc, rates, metodo, destino)

    if calc.isento:
        calc = replace(
            calc,
            beneficio=calc.beneficio.model_copy(
                update={"difal_dispensado": valor_difal, "fcp_dispensado": valor_fcp}
            ),
        ).com_memoria(
            f"   DIFAL: {formatar_moeda(valor_difal)} → {formatar_moeda(0.0)}",
            f"   FCP: {formatar_moeda(valor_fcp)} → {formatar_moeda(0.0)}",
            "DIFAL e FCP não calculados: item isento",
        )
        valor_difal = 0.0
        valor_fcp = 0.0
    else:
        calc = calc.com_memoria(*passos)

    total = valor_difal + valor_fcp
    calc = calc.com_memoria(
        SEPARADOR,
        "RESULTADO FINAL:",
        f"DIFAL: {formatar_moeda(valor_difal)}",
        f"FCP: {formatar_moeda(valor_fcp)}",
        f"TOTAL A RECOLHER: {formatar_moeda(total)}",
        RODAPE,
    )

    return CalculationResult(
        cod_item=item.cod_item,
        ncm=item.ncm,
        cfop=item.cfop,
        descricao=item.descricao,
        cst_icms=item.cst_icms,
        destinacao=destinacao_cfop(item.cfop),
        metodo=metodo.value,
        base_calculo_original=calc.base_original,
        base_calculo=calc.base,
        aliq_origem=calc.aliq_origem,
        aliq_destino=calc.aliq_destino,
        aliq_fcp=aliq_fcp,
        valor_difal=valor_difal,
        valor_fcp=valor_fcp,
        total_recolher=total,
        beneficio_aplicado=calc.beneficio,
        memoria_calculo=calc.memoria,
        erro=None,
    )


def resultado_com_erro(item: FiscalItem, erro: str, metodo: Optional[MetodoCalculo] = None) -> CalculationResult:
    """Resultado de item que falhou: valores monetários zerados e erro preenchido."""
    return CalculationResult(
        cod_item=item.cod_item,
        ncm=item.ncm,
        cfop=item.cfop,
        descricao=item.descricao,
        cst_icms=item.cst_icms,
        destinacao=destinacao_cfop(item.cfop),
        metodo=metodo.value if metodo else None,
        memoria_calculo=(f"=== MEMÓRIA DE CÁLCULO - ITEM {item.cod_item} ===", f"ERRO: {erro}"),
        erro=erro,
    )
