from __future__ import annotations

import csv
import io
from typing import Any, Iterable, List, Tuple

from .schemas import CalculationResult
from .utils import round_money

# ordem fixa consumida pelos relatórios (planilha/PDF)
COLUNAS: Tuple[str, ...] = (
    "Código Item",
    "NCM",
    "Descrição",
    "CFOP",
    "Base Original",
    "Base Final",
    "Alíq. Origem (%)",
    "Alíq. Destino (%)",
    "Alíq. FCP (%)",
    "DIFAL",
    "FCP",
    "Benefício",
    "Memória de Cálculo",
)

SEPARADOR_MEMORIA = " | "


def _linha(r: CalculationResult) -> List[Any]:
    return [
        r.cod_item,
        r.ncm or "",
        r.descricao or "",
        r.cfop or "",
        round_money(r.base_calculo_original),
        round_money(r.base_calculo),
        r.aliq_origem,
        r.aliq_destino,
        r.aliq_fcp,
        round_money(r.valor_difal),
        round_money(r.valor_fcp),
        r.beneficio_aplicado.tipo if r.beneficio_aplicado else "",
        SEPARADOR_MEMORIA.join(r.memoria_calculo),
    ]


def tabular_projection(results: Iterable[CalculationResult]) -> Tuple[List[str], List[List[Any]]]:
    """Cabeçalho + uma linha por resultado, na ordem da execução."""
    return list(COLUNAS), [_linha(r) for r in results]


def _fmt_celula(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, float):
        return f"{value:.2f}".replace(".", ",")
    return str(value)


def to_csv(results: Iterable[CalculationResult]) -> str:
    headers, rows = tabular_projection(results)
    buf = io.StringIO()
    writer = csv.writer(buf, delimiter=";", lineterminator="\n")
    writer.writerow(headers)
    for row in rows:
        writer.writerow([_fmt_celula(v) for v in row])
    return buf.getvalue()
