from __future__ import annotations

import logging
import logging.config
import os
import threading
from typing import List

from dotenv import load_dotenv
from fastapi import FastAPI, HTTPException, Query
from fastapi.responses import PlainTextResponse

from .calculation import MetodoCalculo
from .config_store import ConfigurationStore
from .engine import DifalCalculator
from .exceptions import DifalInputError
from .export import to_csv
from .loader import BASE_PATH, load_jurisdictions
from .pareto import LIMITE_PADRAO
from .schemas import (
    AplicarPorNcmRequest,
    AplicarPorNcmResponse,
    CalcularResponse,
    CargaItensResponse,
    ConfiguracoesResponse,
    FiscalItem,
    GlobalConfiguration,
    ItemConfiguration,
    JurisdicaoResponse,
    JurisdicoesRequest,
    ParetoAnalysis,
    RunTotals,
)

load_dotenv()

LOGGING = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "json": {
            "class": "pythonjsonlogger.json.JsonFormatter",
            "format": "%(asctime)s %(levelname)s %(name)s %(message)s",
        },
    },
    "handlers": {
        "console": {
            "class": "logging.StreamHandler",
            "formatter": "json",
        },
    },
    "loggers": {
        "difal": {
            "handlers": ["console"],
            "level": os.getenv("LOG_LEVEL", "INFO").upper(),
            "propagate": False,
        },
    },
}

logging.config.dictConfig(LOGGING)
logger = logging.getLogger(__name__)

APP_NAME = "difal-engine"
app = FastAPI(title=APP_NAME, version="1.0.0")


def get_data_dir() -> str:
    base = os.getenv("DATA_DIR") or BASE_PATH
    return os.path.abspath(base)


def get_metodo() -> MetodoCalculo:
    return MetodoCalculo.parse(os.getenv("DIFAL_METODO", MetodoCalculo.AUTO.value))


store = ConfigurationStore()
calculator = DifalCalculator(
    table=load_jurisdictions(get_data_dir()),
    store=store,
    metodo=get_metodo(),
)

# serializa o uso da sessão entre requisições (endpoints sync rodam em threadpool)
_sessao = threading.Lock()


@app.get("/health")
def health():
    return {
        "status": "ok",
        "data_dir": calculator.table.base_dir,
        "metodo": calculator.metodo.value,
        "ufs": len(calculator.table),
    }


@app.get("/debug")
def debug():
    with _sessao:
        return calculator.debug_info()


# -------------------------
# Jurisdições
# -------------------------
@app.get("/jurisdicoes", response_model=List[JurisdicaoResponse])
def listar_jurisdicoes():
    table = calculator.table
    return [
        JurisdicaoResponse(
            uf=r.uf,
            nome=r.nome,
            aliquota_interna=r.aliquota_interna,
            fcp=r.fcp,
            fcp_max=r.fcp_max,
            metodologia=r.metodologia,
            regiao=r.regiao,
            fcp_base_dupla=r.fcp_base_dupla,
        )
        for r in (table.lookup(uf) for uf in table.codes())
    ]


@app.post("/jurisdicoes")
def configurar_jurisdicoes(req: JurisdicoesRequest):
    try:
        with _sessao:
            pair = calculator.configure_jurisdictions(req.origem, req.destino)
    except DifalInputError as e:
        raise HTTPException(status_code=400, detail=e.mensagem)
    return pair.model_dump()


@app.post("/itens", response_model=CargaItensResponse)
def carregar_itens(itens: List[FiscalItem]):
    with _sessao:
        return CargaItensResponse(carregados=calculator.load_items(itens))


# -------------------------
# Configurações (entre execuções)
# -------------------------
@app.get("/configuracoes", response_model=ConfiguracoesResponse)
def listar_configuracoes():
    return ConfiguracoesResponse(
        global_config=store.get_global_configuration(),
        itens=store.configured_items(),
    )


@app.put("/configuracoes/itens/{cod_item}", response_model=ItemConfiguration)
def configurar_item(cod_item: str, config: ItemConfiguration):
    with _sessao:
        store.set_item_configuration(cod_item, config)
        return store.get_item_configuration(cod_item)


@app.patch("/configuracoes/itens/{cod_item}", response_model=ItemConfiguration)
def atualizar_item(cod_item: str, config: ItemConfiguration):
    # só os campos enviados mudam; "beneficio": "" grava "sem benefício"
    with _sessao:
        return store.update_item_configuration(cod_item, **config.model_dump(exclude_unset=True))


@app.delete("/configuracoes/itens/{cod_item}")
def limpar_configuracao_item(cod_item: str):
    with _sessao:
        removido = store.clear_item_configuration(cod_item)
    if not removido:
        raise HTTPException(status_code=404, detail=f"Item {cod_item} sem configuração")
    return {"ok": True}


@app.put("/configuracoes/global", response_model=GlobalConfiguration)
def configurar_global(config: GlobalConfiguration):
    with _sessao:
        store.set_global_configuration(config)
        return store.get_global_configuration()


@app.delete("/configuracoes")
def limpar_configuracoes():
    with _sessao:
        store.clear_all()
    return {"ok": True}


@app.post("/configuracoes/ncm", response_model=AplicarPorNcmResponse)
def aplicar_por_ncm(req: AplicarPorNcmRequest):
    with _sessao:
        aplicados = calculator.apply_configuration_by_ncm(req.ncm, req.cod_item_origem)
    return AplicarPorNcmResponse(ncm=req.ncm, aplicados=aplicados)


# -------------------------
# Execução
# -------------------------
@app.post("/calcular", response_model=CalcularResponse)
def calcular():
    with _sessao:
        try:
            resultados = calculator.compute_all()
        except DifalInputError as e:
            raise HTTPException(status_code=400, detail=e.mensagem)
        except Exception as e:
            logger.exception("Falha inesperada no cálculo DIFAL")
            raise HTTPException(status_code=500, detail=str(e))

        return CalcularResponse(
            origem=calculator.pair.origem,
            destino=calculator.pair.destino,
            metodo=calculator.metodo_execucao.value,
            resultados=resultados,
            totais=calculator.get_totals(),
        )


@app.get("/totais", response_model=RunTotals)
def totais():
    with _sessao:
        return calculator.get_totals()


@app.get("/analise/pareto", response_model=ParetoAnalysis)
def analise_pareto(
    agrupar_por: str = Query("ncm"),
    campo_valor: str = Query("base_calculo"),
    limite: float = Query(LIMITE_PADRAO),
):
    try:
        with _sessao:
            return calculator.pareto(agrupar_por, campo_valor, limite)
    except DifalInputError as e:
        raise HTTPException(status_code=400, detail=e.mensagem)


@app.get("/exportar/csv", response_class=PlainTextResponse)
def exportar_csv():
    with _sessao:
        conteudo = to_csv(calculator.resultados)
    return PlainTextResponse(
        conteudo,
        media_type="text/csv; charset=utf-8",
        headers={"Content-Disposition": 'attachment; filename="difal.csv"'},
    )


@app.post("/reset")
def reset():
    with _sessao:
        calculator.reset()
    return {"ok": True}


@app.post("/reload")
def reload_table():
    # Recarrega a tabela de UFs sem reiniciar o container
    try:
        with _sessao:
            table = calculator.reload_table()
        return {"ok": True, "ufs": len(table)}
    except Exception as e:
        raise HTTPException(status_code=500, detail=str(e))
