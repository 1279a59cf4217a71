from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional, Tuple

from .loader import (
    ALIQUOTA_INTERESTADUAL_PADRAO,
    FALLBACK_ALIQUOTA_INTERNA,
    FALLBACK_FCP,
    JurisdictionTable,
)
from .schemas import FiscalItem, ItemConfiguration, JurisdictionPair
from .utils import norm_code, to_float

ALIQUOTA_IMPORTADOS = 4.0
FALLBACK_ALIQUOTA_ORIGEM = ALIQUOTA_INTERESTADUAL_PADRAO

# 1º dígito do CST (origem da mercadoria) que indica importação - Res. SF 13/2012
ORIGENS_IMPORTADAS = ("1", "2", "3", "8")

FONTE_ITEM = "configuração do item"
FONTE_GLOBAL = "configuração global"
FONTE_FALLBACK = "padrão"


# -------------------------
# Resolução em camadas (item > global > tabela > constante)
# -------------------------
@dataclass(frozen=True)
class Resolved:
    valor: Any
    fonte: str

    @property
    def explicito(self) -> bool:
        return self.fonte in (FONTE_ITEM, FONTE_GLOBAL)


def resolve_override(
    *layers: Tuple[str, Optional[Any]],
    default: Any = None,
    fonte_default: str = FONTE_FALLBACK,
) -> Resolved:
    """
    Percorre as camadas (fonte, valor) em ordem e devolve o primeiro valor
    definido, junto com o nome da fonte. Sem nenhum valor, devolve o default.
    """
    for fonte, valor in layers:
        if valor is not None:
            return Resolved(valor, fonte)
    return Resolved(default, fonte_default)


def is_imported(cst_icms: Optional[str]) -> bool:
    cst = norm_code(cst_icms)
    if len(cst) < 3:
        return False
    return cst[0] in ORIGENS_IMPORTADAS


# -------------------------
# Alíquota efetiva pelo CST / CSOSN
# -------------------------
# CST (2 últimos dígitos) com ICMS próprio zerado na origem
CST_ALIQUOTA_ZERO = {
    "10": "substituição tributária",
    "30": "substituição tributária",
    "60": "ICMS cobrado anteriormente por ST",
    "40": "isenta",
    "41": "não tributada",
    "50": "suspensão",
    "51": "diferimento",
}
# CST com redução de base: alíquota efetiva = VL_ICMS / VL_ITEM
CST_REDUCAO_BASE = ("20", "70")

CSOSN_ALIQUOTA_ZERO = ("300", "400", "500")
CSOSN_TRIBUTADO = ("101", "102", "103", "201", "202", "203", "900")
ALIQUOTA_SIMPLES_NACIONAL = 7.0


def aliquota_efetiva_cst(
    item: FiscalItem,
    pair: JurisdictionPair,
    table: JurisdictionTable,
) -> Tuple[Optional[float], str]:
    """
    Alíquota de origem implícita no CST/CSOSN do item.

    4 dígitos = origem + CSOSN (Simples Nacional); 3 dígitos = origem + CST;
    2 dígitos = só o CST. Retorna (None, "") quando o código não define a
    alíquota (ex: CST 00/90), e a resolução segue para a alíquota da nota.
    """
    cst = norm_code(item.cst_icms)
    if not cst.isdigit() or len(cst) < 2:
        return None, ""

    if len(cst) == 4:
        csosn = cst[1:]
        if csosn in CSOSN_ALIQUOTA_ZERO:
            return 0.0, f"CSOSN {csosn} sem ICMS próprio"
        if csosn in CSOSN_TRIBUTADO:
            if is_imported(cst):
                return ALIQUOTA_IMPORTADOS, f"CSOSN {csosn} importado"
            interestadual = table.interstate_rate(pair.origem, pair.destino)
            return (
                interestadual if interestadual is not None else ALIQUOTA_SIMPLES_NACIONAL,
                f"CSOSN {csosn} nacional",
            )
        return None, ""

    tributacao = cst[-2:]
    if tributacao in CST_ALIQUOTA_ZERO:
        return 0.0, f"CST {tributacao} ({CST_ALIQUOTA_ZERO[tributacao]})"

    if tributacao in CST_REDUCAO_BASE:
        valor_icms = to_float(item.valor_icms, "valor_icms")
        valor_item = to_float(item.valor_item, "valor_item")
        if valor_icms is None or not valor_item or valor_item <= 0:
            return None, ""
        efetiva = round(max(valor_icms, 0.0) / valor_item * 100, 4)
        return efetiva, f"CST {tributacao} efetiva (VL_ICMS/VL_ITEM)"

    return None, ""


@dataclass(frozen=True)
class ResolvedRates:
    origem: Resolved
    destino: Resolved
    fcp: Resolved

    @property
    def aliq_origem(self) -> float:
        return float(self.origem.valor)

    @property
    def aliq_destino(self) -> float:
        return float(self.destino.valor)

    @property
    def aliq_fcp(self) -> float:
        return float(self.fcp.valor)


def resolve_rates(
    item: FiscalItem,
    item_config: ItemConfiguration,
    global_config: ItemConfiguration,
    pair: JurisdictionPair,
    table: JurisdictionTable,
) -> ResolvedRates:
    uf_destino = table.lookup(pair.destino)
    aliq_nota = to_float(item.aliq_icms, "aliq_icms")
    aliq_cst, fonte_cst = aliquota_efetiva_cst(item, pair, table)

    origem = resolve_override(
        (FONTE_ITEM, item_config.aliq_origem),
        (FONTE_GLOBAL, global_config.aliq_origem),
        (f"produto importado (CST {item.cst_icms})", ALIQUOTA_IMPORTADOS if is_imported(item.cst_icms) else None),
        (fonte_cst, aliq_cst),
        ("alíquota da nota", aliq_nota if aliq_nota and aliq_nota > 0 else None),
        (f"interestadual {pair.origem}→{pair.destino}", table.interstate_rate(pair.origem, pair.destino)),
        default=FALLBACK_ALIQUOTA_ORIGEM,
    )

    destino = resolve_override(
        (FONTE_ITEM, item_config.aliq_destino),
        (FONTE_GLOBAL, global_config.aliq_destino),
        (f"interna {uf_destino.uf}", uf_destino.aliquota_interna if uf_destino.conhecida else None),
        default=FALLBACK_ALIQUOTA_INTERNA,
    )

    fcp = resolve_override(
        (FONTE_ITEM, item_config.fcp_manual),
        (FONTE_GLOBAL, global_config.fcp_manual),
        (f"FCP {uf_destino.uf}", uf_destino.fcp if uf_destino.conhecida else None),
        default=FALLBACK_FCP,
    )

    return ResolvedRates(origem=origem, destino=destino, fcp=fcp)
