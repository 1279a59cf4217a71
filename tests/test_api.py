# tests/test_api.py

import pytest
from fastapi.testclient import TestClient

from difal import main

client = TestClient(main.app)

ITENS = [
    {"cod_item": "1", "ncm": "8471.30.12", "cfop": "2556", "cst_icms": "000", "aliq_icms": 12, "valor_item": 1000},
    {"cod_item": "2", "ncm": "8471.30.12", "cfop": "2551", "cst_icms": "000", "valor_item": "abc"},
]


@pytest.fixture(autouse=True)
def sessao_limpa():
    main.calculator.reset()
    main.store.clear_all()
    yield
    main.calculator.reset()
    main.store.clear_all()


def _preparar(origem="SP", destino="GO", itens=ITENS):
    assert client.post("/jurisdicoes", json={"origem": origem, "destino": destino}).status_code == 200
    assert client.post("/itens", json=itens).json() == {"carregados": len(itens)}


def test_health():
    resp = client.get("/health")

    assert resp.status_code == 200
    assert resp.json()["status"] == "ok"
    assert resp.json()["ufs"] == 27


def test_calcular_sem_jurisdicao_retorna_400():
    resp = client.post("/calcular")

    assert resp.status_code == 400
    assert resp.json()["detail"] == "UFs de origem e destino não configuradas"


def test_uf_invalida_retorna_400():
    resp = client.post("/jurisdicoes", json={"origem": "1X", "destino": "GO"})

    assert resp.status_code == 400


def test_calcular_sem_itens_retorna_400():
    client.post("/jurisdicoes", json={"origem": "SP", "destino": "GO"})

    resp = client.post("/calcular")

    assert resp.status_code == 400
    assert resp.json()["detail"] == "Nenhum item disponível para cálculo"


def test_fluxo_completo():
    _preparar()

    resp = client.post("/calcular")

    assert resp.status_code == 200
    body = resp.json()
    assert body["origem"] == "SP"
    assert body["metodo"] == "base-dupla"
    assert [r["cod_item"] for r in body["resultados"]] == ["1", "2"]
    assert body["resultados"][0]["valor_difal"] == pytest.approx(86.42, abs=0.01)
    assert body["resultados"][1]["erro"] is not None
    assert body["totais"]["total_itens"] == 2
    assert body["totais"]["itens_com_erro"] == 1

    totais = client.get("/totais").json()
    assert totais == body["totais"]


def test_configuracao_de_item_e_remocao():
    _preparar()

    resp = client.put("/configuracoes/itens/1", json={"beneficio": "isencao"})
    assert resp.status_code == 200
    assert resp.json()["beneficio"] == "isencao"

    resultado = client.post("/calcular").json()["resultados"][0]
    assert resultado["total_recolher"] == 0.0

    assert client.delete("/configuracoes/itens/1").status_code == 200
    assert client.delete("/configuracoes/itens/1").status_code == 404


def test_configuracao_global_e_limpeza():
    _preparar()

    client.put("/configuracoes/global", json={"aliq_destino": 12})
    resultado = client.post("/calcular").json()["resultados"][0]
    assert resultado["valor_difal"] == 0.0

    client.delete("/configuracoes")
    resultado = client.post("/calcular").json()["resultados"][0]
    assert resultado["valor_difal"] > 0


def test_aliquota_negativa_rejeitada_pelo_schema():
    resp = client.put("/configuracoes/itens/1", json={"aliq_origem": -1})

    assert resp.status_code == 422


def test_aplicar_por_ncm():
    _preparar()
    client.put("/configuracoes/itens/1", json={"fcp_manual": 1})

    resp = client.post("/configuracoes/ncm", json={"ncm": "8471.30.12", "cod_item_origem": "1"})

    assert resp.json() == {"ncm": "8471.30.12", "aplicados": 2}


def test_exportar_csv():
    _preparar()
    client.post("/calcular")

    resp = client.get("/exportar/csv")

    assert resp.status_code == 200
    assert resp.headers["content-type"].startswith("text/csv")
    linhas = resp.text.splitlines()
    assert linhas[0].startswith("Código Item;NCM;")
    assert len(linhas) == 3


def test_reset():
    _preparar()
    client.post("/calcular")

    assert client.post("/reset").json() == {"ok": True}
    assert client.get("/totais").json()["total_itens"] == 0
    assert client.post("/calcular").status_code == 400


def test_reload():
    resp = client.post("/reload")

    assert resp.json() == {"ok": True, "ufs": 27}


def test_debug():
    _preparar()

    info = client.get("/debug").json()

    assert info["itens"] == 2
    assert info["origem"] == "SP"


def test_listar_jurisdicoes():
    resp = client.get("/jurisdicoes")

    assert resp.status_code == 200
    ufs = resp.json()
    assert len(ufs) == 27
    assert ufs[0]["uf"] == "AC"
    rj = next(u for u in ufs if u["uf"] == "RJ")
    assert rj["fcp_max"] == pytest.approx(4.0)
    assert rj["regiao"] == "SUDESTE"
    go = next(u for u in ufs if u["uf"] == "GO")
    assert go["fcp_base_dupla"] is False


def test_listar_configuracoes():
    client.put("/configuracoes/global", json={"fcp_manual": 1})
    client.put("/configuracoes/itens/2", json={"aliq_origem": 4})
    client.put("/configuracoes/itens/1", json={"beneficio": "isencao"})

    body = client.get("/configuracoes").json()

    assert body["global_config"]["fcp_manual"] == 1.0
    assert list(body["itens"]) == ["1", "2"]
    assert body["itens"]["2"]["aliq_origem"] == 4.0


def test_patch_altera_so_campos_enviados():
    client.put(
        "/configuracoes/itens/1",
        json={"beneficio": "reducao-base", "carga_efetiva_desejada": 4, "aliq_destino": 19},
    )

    resp = client.patch("/configuracoes/itens/1", json={"fcp_manual": 1})
    assert resp.status_code == 200
    assert resp.json()["beneficio"] == "reducao-base"
    assert resp.json()["fcp_manual"] == 1.0

    sem_beneficio = client.patch("/configuracoes/itens/1", json={"beneficio": ""}).json()
    assert sem_beneficio["beneficio"] == ""
    assert sem_beneficio["carga_efetiva_desejada"] is None
    assert sem_beneficio["aliq_destino"] == 19.0


def test_beneficio_vazio_no_item_bloqueia_global():
    _preparar()
    client.put("/configuracoes/global", json={"beneficio": "isencao"})
    client.patch("/configuracoes/itens/1", json={"beneficio": ""})

    resultado = client.post("/calcular").json()["resultados"][0]

    assert resultado["beneficio_aplicado"] is None
    assert resultado["valor_difal"] > 0


def test_analise_pareto():
    _preparar()
    client.post("/calcular")

    resp = client.get("/analise/pareto", params={"agrupar_por": "ncm", "limite": 80})

    assert resp.status_code == 200
    body = resp.json()
    assert body["total_itens"] == 2
    assert [g["chave"] for g in body["grupos"]] == ["84713012"]
    assert body["nivel_concentracao"] == "Baixa"


def test_analise_pareto_invalida_retorna_400():
    _preparar()
    client.post("/calcular")

    assert client.get("/analise/pareto", params={"agrupar_por": "uf"}).status_code == 400
    client.post("/reset")
    assert client.get("/analise/pareto").status_code == 400
