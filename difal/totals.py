from __future__ import annotations

from typing import Iterable

from .schemas import CalculationResult, RunTotals


def aggregate(results: Iterable[CalculationResult]) -> RunTotals:
    """
    Totalizadores da execução. Função pura: sempre recalculável
    a partir da lista de resultados.
    """
    total_itens = 0
    itens_com_difal = 0
    itens_com_erro = 0
    itens_com_beneficio = 0
    total_difal = 0.0
    total_fcp = 0.0
    total_base = 0.0
    total_recolher = 0.0

    for r in results:
        total_itens += 1
        if r.erro:
            itens_com_erro += 1
        if r.valor_difal > 0:
            itens_com_difal += 1
        if r.beneficio_aplicado is not None:
            itens_com_beneficio += 1
        total_difal += r.valor_difal
        total_fcp += r.valor_fcp
        total_base += r.base_calculo
        total_recolher += r.total_recolher

    percentual = (itens_com_difal / total_itens) * 100 if total_itens else 0.0

    return RunTotals(
        total_itens=total_itens,
        itens_com_difal=itens_com_difal,
        itens_com_erro=itens_com_erro,
        itens_com_beneficio=itens_com_beneficio,
        total_difal=total_difal,
        total_fcp=total_fcp,
        total_base=total_base,
        total_recolher=total_recolher,
        percentual_com_difal=percentual,
    )
