from __future__ import annotations

from typing import Dict, Iterable, List, Tuple

from .exceptions import DifalInputError
from .schemas import CalculationResult, ParetoAnalysis, ParetoGroup
from .utils import norm_ncm

LIMITE_PADRAO = 80.0

AGRUPAMENTOS = ("ncm", "cfop")
CAMPOS_VALOR = ("base_calculo", "valor_difal", "valor_fcp", "total_recolher")

# (percentual máximo de grupos no Pareto, rótulo)
NIVEIS_CONCENTRACAO = (
    (5.0, "Extremamente Alta"),
    (10.0, "Muito Alta"),
    (20.0, "Alta"),
    (30.0, "Moderada"),
)


def nivel_concentracao(grupos_pareto: int, total_grupos: int) -> str:
    razao = grupos_pareto * 100 / total_grupos if total_grupos else 0.0
    for maximo, rotulo in NIVEIS_CONCENTRACAO:
        if razao <= maximo:
            return rotulo
    return "Baixa"


def _chave(r: CalculationResult, agrupar_por: str) -> str:
    if agrupar_por == "ncm":
        return norm_ncm(r.ncm or "")
    return (r.cfop or "").strip()


def _agrupar(
    results: Iterable[CalculationResult],
    agrupar_por: str,
    campo_valor: str,
) -> Tuple[int, List[Tuple[str, float, int]]]:
    total_itens = 0
    valores: Dict[str, float] = {}
    quantidades: Dict[str, int] = {}

    for r in results:
        total_itens += 1
        chave = _chave(r, agrupar_por)
        valor = getattr(r, campo_valor)
        # sem chave ou sem valor (inclui itens com erro) não entram
        if not chave or valor <= 0:
            continue
        valores[chave] = valores.get(chave, 0.0) + valor
        quantidades[chave] = quantidades.get(chave, 0) + 1

    # maior valor primeiro; empate pela chave para ordem estável
    ordenado = sorted(valores.items(), key=lambda kv: (-kv[1], kv[0]))
    return total_itens, [(chave, valor, quantidades[chave]) for chave, valor in ordenado]


def analyze_pareto(
    results: Iterable[CalculationResult],
    agrupar_por: str = "ncm",
    campo_valor: str = "base_calculo",
    limite: float = LIMITE_PADRAO,
) -> ParetoAnalysis:
    """
    Curva ABC dos resultados: agrupa por NCM (ou CFOP), ordena por valor
    e marca os grupos que, somados, atingem `limite`% do total.
    """
    if agrupar_por not in AGRUPAMENTOS:
        raise DifalInputError(f"Agrupamento inválido: {agrupar_por!r} (use {', '.join(AGRUPAMENTOS)})")
    if campo_valor not in CAMPOS_VALOR:
        raise DifalInputError(f"Campo de valor inválido: {campo_valor!r} (use {', '.join(CAMPOS_VALOR)})")
    if not 0 < limite <= 100:
        raise DifalInputError(f"Limite de Pareto deve estar entre 0 e 100: {limite}")

    total_itens, dados = _agrupar(results, agrupar_por, campo_valor)
    valor_total = sum(valor for _, valor, _ in dados)
    if valor_total <= 0:
        raise DifalInputError("Nenhum valor positivo para a análise de Pareto")

    alvo = valor_total * (limite / 100)
    acumulado = 0.0
    grupos_pareto = 0
    grupos: List[ParetoGroup] = []
    for posicao, (chave, valor, quantidade) in enumerate(dados, start=1):
        acumulado += valor
        # o grupo que cruza o limite ainda entra no Pareto
        if grupos_pareto == 0 and acumulado >= alvo:
            grupos_pareto = posicao
        grupos.append(ParetoGroup(
            chave=chave,
            valor=valor,
            quantidade=quantidade,
            posicao=posicao,
            participacao=round((valor / valor_total) * 100, 2),
            participacao_acumulada=round((acumulado / valor_total) * 100, 2),
            pareto=grupos_pareto == 0 or posicao == grupos_pareto,
        ))

    valor_pareto = sum(g.valor for g in grupos[:grupos_pareto])
    return ParetoAnalysis(
        agrupar_por=agrupar_por,
        campo_valor=campo_valor,
        limite=limite,
        total_itens=total_itens,
        total_grupos=len(grupos),
        valor_total=valor_total,
        grupos_pareto=grupos_pareto,
        valor_pareto=valor_pareto,
        percentual_pareto=round((valor_pareto / valor_total) * 100, 2),
        concentracao=round((grupos_pareto / len(grupos)) * 100, 2),
        nivel_concentracao=nivel_concentracao(grupos_pareto, len(grupos)),
        grupos=tuple(grupos),
    )
