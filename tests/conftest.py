# tests/conftest.py

import pytest

from difal.calculation import MetodoCalculo
from difal.config_store import ConfigurationStore
from difal.engine import DifalCalculator
from difal.loader import load_jurisdictions
from difal.schemas import FiscalItem


@pytest.fixture(scope="session")
def table():
    return load_jurisdictions()


@pytest.fixture
def store():
    return ConfigurationStore()


@pytest.fixture
def make_item():
    def _make(cod_item="1", **campos):
        dados = {
            "ncm": "8471.30.12",
            "cfop": "2556",
            "cst_icms": "000",
            "descricao": f"Item {cod_item}",
            "valor_item": 1000.0,
        }
        dados.update(campos)
        return FiscalItem(cod_item=cod_item, **dados)

    return _make


@pytest.fixture
def make_calculator(table, store):
    def _make(origem="SP", destino="GO", metodo=MetodoCalculo.AUTO, itens=None):
        calc = DifalCalculator(table, store, metodo)
        calc.configure_jurisdictions(origem, destino)
        if itens is not None:
            calc.load_items(itens)
        return calc

    return _make
