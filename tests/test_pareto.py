# tests/test_pareto.py

import pytest

from difal.exceptions import DifalInputError
from difal.pareto import analyze_pareto, nivel_concentracao
from difal.schemas import CalculationResult


def _resultado(cod, ncm="8471.30.12", cfop="2556", base=0.0, difal=0.0, erro=None):
    return CalculationResult(
        cod_item=cod,
        ncm=ncm,
        cfop=cfop,
        base_calculo=base,
        valor_difal=difal,
        total_recolher=difal,
        erro=erro,
    )


def test_agrupa_por_ncm_e_ordena_por_valor():
    resultados = [
        _resultado("1", ncm="9403.10.00", base=100.0),
        _resultado("2", ncm="8471.30.12", base=500.0),
        _resultado("3", ncm="84713012", base=300.0),
        _resultado("4", ncm="3926.10.00", base=100.0),
    ]

    analise = analyze_pareto(resultados)

    assert analise.total_itens == 4
    assert analise.total_grupos == 3
    assert analise.valor_total == pytest.approx(1000.0)
    # empate de valor: ordem pela chave
    assert [(g.chave, g.valor, g.quantidade, g.posicao) for g in analise.grupos] == [
        ("84713012", 800.0, 2, 1),
        ("39261000", 100.0, 1, 2),
        ("94031000", 100.0, 1, 3),
    ]
    assert [g.participacao_acumulada for g in analise.grupos] == [80.0, 90.0, 100.0]


def test_grupo_que_cruza_o_limite_entra_no_pareto():
    """
    Cenário:
    - Grupos com 50%, 30%, 15% e 5% do total; limite 70%.

    Valida:
    - Os dois primeiros ficam no Pareto (o segundo cruza os 70%).
    """
    resultados = [
        _resultado("1", ncm="1", base=50.0),
        _resultado("2", ncm="2", base=30.0),
        _resultado("3", ncm="3", base=15.0),
        _resultado("4", ncm="4", base=5.0),
    ]

    analise = analyze_pareto(resultados, limite=70)

    assert [g.pareto for g in analise.grupos] == [True, True, False, False]
    assert analise.grupos_pareto == 2
    assert analise.valor_pareto == pytest.approx(80.0)
    assert analise.percentual_pareto == 80.0
    assert analise.concentracao == 50.0
    assert analise.nivel_concentracao == "Baixa"


def test_agrupa_por_cfop_e_campo_valor():
    resultados = [
        _resultado("1", cfop="2556", difal=10.0),
        _resultado("2", cfop="2551", difal=30.0),
        _resultado("3", cfop="2556", difal=5.0),
    ]

    analise = analyze_pareto(resultados, agrupar_por="cfop", campo_valor="valor_difal", limite=100)

    assert [(g.chave, g.valor) for g in analise.grupos] == [("2551", 30.0), ("2556", 15.0)]
    assert analise.grupos_pareto == 2


def test_itens_sem_chave_ou_sem_valor_ficam_fora():
    resultados = [
        _resultado("1", base=100.0),
        _resultado("2", ncm=None, base=50.0),
        _resultado("3", ncm="9403.10.00", base=0.0, erro="Campo valor_item inválido"),
    ]

    analise = analyze_pareto(resultados)

    assert analise.total_itens == 3
    assert [g.chave for g in analise.grupos] == ["84713012"]


@pytest.mark.parametrize(
    "kwargs",
    [
        {"agrupar_por": "descricao"},
        {"campo_valor": "aliq_destino"},
        {"limite": 0},
        {"limite": 120},
    ],
)
def test_argumentos_invalidos(kwargs):
    with pytest.raises(DifalInputError):
        analyze_pareto([_resultado("1", base=100.0)], **kwargs)


def test_sem_valor_positivo():
    with pytest.raises(DifalInputError) as exc:
        analyze_pareto([_resultado("1"), _resultado("2")])

    assert exc.value.mensagem == "Nenhum valor positivo para a análise de Pareto"


@pytest.mark.parametrize(
    "grupos,total,esperado",
    [
        (1, 20, "Extremamente Alta"),
        (2, 20, "Muito Alta"),
        (4, 20, "Alta"),
        (6, 20, "Moderada"),
        (7, 20, "Baixa"),
    ],
)
def test_nivel_concentracao(grupos, total, esperado):
    assert nivel_concentracao(grupos, total) == esperado
