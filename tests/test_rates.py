# tests/test_rates.py

import pytest

from difal.rates import (
    ALIQUOTA_IMPORTADOS,
    FONTE_FALLBACK,
    FONTE_GLOBAL,
    FONTE_ITEM,
    aliquota_efetiva_cst,
    is_imported,
    resolve_override,
    resolve_rates,
)
from difal.schemas import GlobalConfiguration, ItemConfiguration, JurisdictionPair

SP_GO = JurisdictionPair(origem="SP", destino="GO")


def _resolver(item, table, pair=SP_GO, item_config=None, global_config=None):
    return resolve_rates(
        item,
        item_config or ItemConfiguration(),
        global_config or GlobalConfiguration(),
        pair,
        table,
    )


def test_resolve_override_primeiro_valor_definido_vence():
    r = resolve_override(("a", None), ("b", 0.0), ("c", 5.0), default=9.0)

    assert r.valor == 0.0
    assert r.fonte == "b"
    assert r.explicito is False


def test_resolve_override_sem_valor_usa_default():
    r = resolve_override((FONTE_ITEM, None), (FONTE_GLOBAL, None), default=12.0)

    assert r.valor == 12.0
    assert r.fonte == FONTE_FALLBACK


@pytest.mark.parametrize(
    "cst,esperado",
    [("100", True), ("200", True), ("300", True), ("800", True), ("000", False), ("500", False), ("10", False), (None, False)],
)
def test_is_imported(cst, esperado):
    assert is_imported(cst) is esperado


def test_aliquotas_da_tabela(make_item, table):
    rates = _resolver(make_item(), table)

    assert rates.aliq_origem == pytest.approx(7.0)
    assert rates.origem.fonte == "interestadual SP→GO"
    assert rates.aliq_destino == pytest.approx(19.0)
    assert rates.destino.fonte == "interna GO"
    assert rates.aliq_fcp == 0.0


def test_aliquota_declarada_na_nota(make_item, table):
    rates = _resolver(make_item(aliq_icms="12,00"), table)

    assert rates.aliq_origem == pytest.approx(12.0)
    assert rates.origem.fonte == "alíquota da nota"


def test_aliquota_declarada_zero_cai_para_tabela(make_item, table):
    rates = _resolver(make_item(aliq_icms=0), table)

    assert rates.aliq_origem == pytest.approx(7.0)


def test_produto_importado_forca_quatro_por_cento(make_item, table):
    rates = _resolver(make_item(cst_icms="100", aliq_icms=12), table)

    assert rates.aliq_origem == ALIQUOTA_IMPORTADOS


def test_precedencia_item_global_tabela(make_item, table):
    item = make_item(cst_icms="100")
    global_config = GlobalConfiguration(aliq_origem=10.0, aliq_destino=17.0, fcp_manual=1.0)
    item_config = ItemConfiguration(aliq_origem=8.0)

    rates = _resolver(item, table, item_config=item_config, global_config=global_config)

    assert rates.aliq_origem == 8.0
    assert rates.origem.fonte == FONTE_ITEM
    assert rates.aliq_destino == 17.0
    assert rates.destino.fonte == FONTE_GLOBAL
    assert rates.aliq_fcp == 1.0
    assert rates.fcp.explicito is True


def test_uf_desconhecida_usa_fallbacks(make_item, table):
    rates = _resolver(make_item(), table, pair=JurisdictionPair(origem="SP", destino="XX"))

    assert rates.aliq_origem == pytest.approx(12.0)
    assert rates.origem.fonte == FONTE_FALLBACK
    assert rates.aliq_destino == pytest.approx(18.0)
    assert rates.aliq_fcp == 0.0


def test_fcp_da_tabela(make_item, table):
    rates = _resolver(make_item(), table, pair=JurisdictionPair(origem="RJ", destino="SP"))

    assert rates.aliq_fcp == pytest.approx(2.0)
    assert rates.fcp.fonte == "FCP SP"
    assert rates.fcp.explicito is False


def test_aliquota_declarada_malformada_levanta_value_error(make_item, table):
    with pytest.raises(ValueError):
        _resolver(make_item(aliq_icms="doze"), table)


@pytest.mark.parametrize("cst", ["060", "010", "040", "041", "051", "60"])
def test_cst_sem_icms_proprio_zera_origem(make_item, table, cst):
    rates = _resolver(make_item(cst_icms=cst, aliq_icms=12.0), table)

    assert rates.aliq_origem == 0.0
    assert rates.origem.fonte.startswith(f"CST {cst[-2:]}")


def test_cst_reducao_base_usa_aliquota_efetiva(make_item, table):
    """
    Cenário:
    - CST 020, VL_ITEM 1.000,00 e VL_ICMS 70,00; nota declara 12%.

    Valida:
    - Alíquota de origem efetiva 7% (70 / 1.000), acima da declarada.
    """
    rates = _resolver(make_item(cst_icms="020", aliq_icms=12.0, valor_icms="70,00"), table)

    assert rates.aliq_origem == pytest.approx(7.0)
    assert rates.origem.fonte == "CST 20 efetiva (VL_ICMS/VL_ITEM)"


def test_cst_reducao_base_sem_valor_icms_segue_para_nota(make_item, table):
    com_nota = _resolver(make_item(cst_icms="070", aliq_icms=12.0), table)
    sem_nota = _resolver(make_item(cst_icms="020"), table)

    assert com_nota.aliq_origem == pytest.approx(12.0)
    assert com_nota.origem.fonte == "alíquota da nota"
    assert sem_nota.aliq_origem == pytest.approx(7.0)
    assert sem_nota.origem.fonte == "interestadual SP→GO"


@pytest.mark.parametrize(
    "cst,esperado,fonte",
    [
        ("0102", 7.0, "CSOSN 102 nacional"),
        ("0900", 7.0, "CSOSN 900 nacional"),
        ("0300", 0.0, "CSOSN 300 sem ICMS próprio"),
        ("0500", 0.0, "CSOSN 500 sem ICMS próprio"),
    ],
)
def test_csosn_simples_nacional(table, make_item, cst, esperado, fonte):
    valor, origem = aliquota_efetiva_cst(make_item(cst_icms=cst), SP_GO, table)

    assert valor == pytest.approx(esperado)
    assert origem == fonte


def test_csosn_importado_e_uf_fora_da_tabela(table, make_item):
    importado = _resolver(make_item(cst_icms="1102"), table)
    fora = aliquota_efetiva_cst(make_item(cst_icms="0101"), JurisdictionPair(origem="SP", destino="XX"), table)

    assert importado.aliq_origem == ALIQUOTA_IMPORTADOS
    assert fora == (7.0, "CSOSN 101 nacional")


@pytest.mark.parametrize("cst", ["000", "090", "00", "X1", "", None, "0999"])
def test_cst_sem_aliquota_definida(table, make_item, cst):
    assert aliquota_efetiva_cst(make_item(cst_icms=cst), SP_GO, table) == (None, "")


def test_configuracao_vence_cst(make_item, table):
    item = make_item(cst_icms="060")

    rates = _resolver(item, table, item_config=ItemConfiguration(aliq_origem=12.0))
    global_rates = _resolver(item, table, global_config=GlobalConfiguration(aliq_origem=4.0))

    assert rates.aliq_origem == 12.0
    assert rates.origem.fonte == FONTE_ITEM
    assert global_rates.aliq_origem == 4.0
