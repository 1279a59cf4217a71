from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional, Tuple

from .benefits import resolve_benefit
from .cache import GenerationCache, make_cache_key
from .calculation import MetodoCalculo, calcular_item, resolve_metodo, resultado_com_erro
from .config_store import ConfigurationSnapshot, ConfigurationStore
from .exceptions import JurisdicaoInvalidaError, JurisdicaoNaoConfiguradaError, NenhumItemError
from .export import tabular_projection
from .loader import BASE_PATH, JurisdictionRates, JurisdictionTable, load_jurisdictions
from .pareto import LIMITE_PADRAO, analyze_pareto
from .rates import ResolvedRates, resolve_rates
from .schemas import CalculationResult, FiscalItem, JurisdictionPair, ParetoAnalysis, RunTotals
from .totals import aggregate
from .utils import norm_code

logger = logging.getLogger(__name__)

# falhas de dado de um item viram `erro` no resultado; não param a execução
ERROS_POR_ITEM = (ValueError, TypeError, ArithmeticError)


@dataclass(frozen=True)
class _Execucao:
    """Tudo que uma execução lê, capturado uma vez no início."""
    epoch: int
    pair: JurisdictionPair
    itens: Tuple[FiscalItem, ...]
    table: JurisdictionTable
    destino: JurisdictionRates
    metodo: MetodoCalculo
    config: ConfigurationSnapshot


class DifalCalculator:
    """
    Motor de cálculo DIFAL de uma sessão.

    Fluxo: configure_jurisdictions -> load_items -> compute_all.
    Cada execução trabalha sobre uma cópia de UFs, itens, tabela e
    configurações. O resultado só é publicado se a sessão não mudou
    (UFs, itens, tabela ou reset) enquanto a execução rodava.
    """

    def __init__(
        self,
        table: JurisdictionTable,
        store: Optional[ConfigurationStore] = None,
        metodo: MetodoCalculo = MetodoCalculo.AUTO,
    ):
        self.table = table
        self.store = store if store is not None else ConfigurationStore()
        self.metodo = metodo
        self._cache = GenerationCache()
        self._lock = threading.RLock()
        # incrementado a cada mudança que invalida resultados
        self._epoch = 0
        self._pair: Optional[JurisdictionPair] = None
        self._itens: Tuple[FiscalItem, ...] = ()
        self._resultados: Tuple[CalculationResult, ...] = ()
        self._metodo_execucao: Optional[MetodoCalculo] = None

    # -------------------------
    # Estado da sessão
    # -------------------------
    @property
    def pair(self) -> Optional[JurisdictionPair]:
        return self._pair

    @property
    def itens(self) -> List[FiscalItem]:
        return list(self._itens)

    @property
    def resultados(self) -> List[CalculationResult]:
        return list(self._resultados)

    @property
    def metodo_execucao(self) -> Optional[MetodoCalculo]:
        return self._metodo_execucao

    def _descartar_resultados(self) -> None:
        self._epoch += 1
        self._resultados = ()
        self._metodo_execucao = None

    def configure_jurisdictions(self, origem: str, destino: str) -> JurisdictionPair:
        codes = []
        for campo, raw in (("origem", origem), ("destino", destino)):
            code = norm_code(raw)
            if len(code) != 2 or not code.isalpha():
                raise JurisdicaoInvalidaError(f"UF de {campo} inválida: {raw!r}", codigo=raw)
            if code not in self.table:
                logger.warning("UF %s fora da tabela; alíquotas padrão serão usadas", code)
            codes.append(code)

        pair = JurisdictionPair(origem=codes[0], destino=codes[1])
        with self._lock:
            self._pair = pair
            self._descartar_resultados()
        logger.info("UFs configuradas: %s → %s", pair.origem, pair.destino)
        return pair

    def load_items(self, items: Iterable[FiscalItem]) -> int:
        itens = tuple(items)
        with self._lock:
            self._itens = itens
            self._descartar_resultados()
        logger.info("Itens carregados: %s", len(itens))
        return len(itens)

    def reset(self) -> None:
        with self._lock:
            self._pair = None
            self._itens = ()
            self._descartar_resultados()
            self._cache.clear()
        logger.info("Sessão de cálculo reiniciada")

    # -------------------------
    # Cálculo
    # -------------------------
    def _iniciar_execucao(self) -> _Execucao:
        with self._lock:
            if self._pair is None:
                raise JurisdicaoNaoConfiguradaError()
            if not self._itens:
                raise NenhumItemError()

            epoch, pair, itens, table = self._epoch, self._pair, self._itens, self.table

        config = self.store.snapshot(item.cod_item for item in itens)
        if self._cache.sync(config.generation):
            logger.debug("Cache de alíquotas invalidado (geração %s)", config.generation)

        destino = table.lookup(pair.destino)
        return _Execucao(
            epoch=epoch,
            pair=pair,
            itens=itens,
            table=table,
            destino=destino,
            metodo=resolve_metodo(self.metodo, destino),
            config=config,
        )

    def _resolver_aliquotas(self, execucao: _Execucao, item: FiscalItem) -> ResolvedRates:
        cache_key = make_cache_key(
            execucao.config.generation,
            execucao.pair.origem,
            execucao.pair.destino,
            item.cod_item,
            item.aliq_icms,
            item.cst_icms,
            item.valor_icms,
            item.valor_item,
        )
        cached = self._cache.get(cache_key)
        if cached:
            return cached

        rates = resolve_rates(
            item,
            execucao.config.item(item.cod_item),
            execucao.config.global_config,
            execucao.pair,
            execucao.table,
        )
        self._cache.set(cache_key, rates)
        return rates

    def _calcular_item(self, execucao: _Execucao, item: FiscalItem) -> CalculationResult:
        try:
            rates = self._resolver_aliquotas(execucao, item)
            beneficio = resolve_benefit(execucao.config.item(item.cod_item), execucao.config.global_config)
            return calcular_item(item, rates, beneficio, execucao.pair, execucao.destino, execucao.metodo)
        except ERROS_POR_ITEM as e:
            logger.error("Erro ao calcular item %s: %s", item.cod_item, e)
            return resultado_com_erro(item, str(e), execucao.metodo)

    def compute_all(self) -> List[CalculationResult]:
        execucao = self._iniciar_execucao()
        logger.info(
            "Cálculo DIFAL iniciado: %s itens, %s → %s, método %s",
            len(execucao.itens), execucao.pair.origem, execucao.pair.destino, execucao.metodo.value,
        )
        resultados = tuple(self._calcular_item(execucao, item) for item in execucao.itens)

        with self._lock:
            publicado = execucao.epoch == self._epoch
            if publicado:
                self._resultados = resultados
                self._metodo_execucao = execucao.metodo

        totais = aggregate(resultados)
        if publicado:
            logger.info(
                "Cálculo DIFAL concluído: %s itens, %s com DIFAL, %s com erro, total a recolher %.2f",
                totais.total_itens, totais.itens_com_difal, totais.itens_com_erro, totais.total_recolher,
            )
        else:
            logger.warning(
                "Sessão alterada durante o cálculo (%s → %s); %s resultados descartados",
                execucao.pair.origem, execucao.pair.destino, totais.total_itens,
            )
        return list(resultados)

    def get_totals(self) -> RunTotals:
        return aggregate(self._resultados)

    def tabular_projection(self) -> Tuple[List[str], List[List[Any]]]:
        return tabular_projection(self._resultados)

    def pareto(
        self,
        agrupar_por: str = "ncm",
        campo_valor: str = "base_calculo",
        limite: float = LIMITE_PADRAO,
    ) -> ParetoAnalysis:
        return analyze_pareto(self._resultados, agrupar_por, campo_valor, limite)

    # -------------------------
    # Operações entre execuções
    # -------------------------
    def apply_configuration_by_ncm(self, ncm: str, cod_item_origem: str) -> int:
        return self.store.apply_by_ncm(ncm, cod_item_origem, self._itens)

    def reload_table(self, data_dir: Optional[str] = None) -> JurisdictionTable:
        table = load_jurisdictions(data_dir or self.table.base_dir or BASE_PATH)
        with self._lock:
            self.table = table
            self._cache.clear()
            self._descartar_resultados()
        return table

    def debug_info(self) -> Dict[str, Any]:
        return {
            "origem": self._pair.origem if self._pair else None,
            "destino": self._pair.destino if self._pair else None,
            "metodo_configurado": self.metodo.value,
            "metodo_execucao": self._metodo_execucao.value if self._metodo_execucao else None,
            "itens": len(self._itens),
            "resultados": len(self._resultados),
            "itens_configurados": len(self.store),
            "geracao_configuracao": self.store.generation,
            "cache_aliquotas": len(self._cache),
            "ufs_na_tabela": len(self.table),
            "data_dir": self.table.base_dir,
        }
