from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List

from .schemas import FiscalItem, GlobalConfiguration, ItemConfiguration
from .utils import norm_ncm

logger = logging.getLogger(__name__)

# parâmetros que só fazem sentido com um benefício escolhido
CAMPOS_BENEFICIO = ("carga_efetiva_desejada", "aliq_origem_efetiva", "aliq_destino_efetiva")


@dataclass(frozen=True)
class ConfigurationSnapshot:
    """Cópia das configurações lida uma vez no início da execução."""
    generation: int
    global_config: GlobalConfiguration
    itens: Dict[str, ItemConfiguration] = field(default_factory=dict)

    def item(self, cod_item: str) -> ItemConfiguration:
        config = self.itens.get(str(cod_item).strip())
        return config.model_copy() if config else ItemConfiguration()


class ConfigurationStore:
    """
    Configurações por item e global, mantidas entre execuções.

    O motor lê uma única vez por execução (snapshot). Toda escrita
    incrementa `generation`; o motor compara a geração no início de cada
    execução para invalidar o cache de alíquotas.
    """

    def __init__(self) -> None:
        self._itens: Dict[str, ItemConfiguration] = {}
        self._global = GlobalConfiguration()
        self._lock = threading.RLock()
        self.generation = 0

    def _touch(self, acao: str, **ctx: Any) -> None:
        self.generation += 1
        logger.debug("Configuração alterada: %s %s (geração %s)", acao, ctx, self.generation)

    # -------------------------
    # Leitura
    # -------------------------
    def get_item_configuration(self, cod_item: str) -> ItemConfiguration:
        config = self._itens.get(str(cod_item).strip())
        return config.model_copy() if config else ItemConfiguration()

    def get_global_configuration(self) -> GlobalConfiguration:
        return self._global.model_copy()

    def configured_items(self) -> Dict[str, ItemConfiguration]:
        with self._lock:
            return {cod: self._itens[cod].model_copy() for cod in sorted(self._itens)}

    def snapshot(self, cod_itens: Iterable[str]) -> ConfigurationSnapshot:
        with self._lock:
            itens = {}
            for cod in cod_itens:
                key = str(cod).strip()
                if key in self._itens:
                    itens[key] = self._itens[key].model_copy()
            return ConfigurationSnapshot(
                generation=self.generation,
                global_config=self._global.model_copy(),
                itens=itens,
            )

    def __len__(self) -> int:
        return len(self._itens)

    # -------------------------
    # Escrita (somente entre execuções)
    # -------------------------
    def set_item_configuration(self, cod_item: str, config: ItemConfiguration) -> None:
        key = str(cod_item).strip()
        with self._lock:
            if config.is_empty():
                self._itens.pop(key, None)
            else:
                self._itens[key] = config.model_copy()
            self._touch("item", cod_item=key)

    def update_item_configuration(self, cod_item: str, **campos: Any) -> ItemConfiguration:
        """
        Altera só os campos informados.

        beneficio="" grava "sem benefício" explícito (não herda o global);
        beneficio=None volta a herdar. Nos dois casos os parâmetros do
        benefício anterior são descartados.
        """
        key = str(cod_item).strip()
        with self._lock:
            atual = self._itens.get(key, ItemConfiguration()).model_dump()
            if "beneficio" in campos and not campos["beneficio"]:
                for campo in CAMPOS_BENEFICIO:
                    atual[campo] = None

            atual.update(campos)
            config = ItemConfiguration(**atual)
            self.set_item_configuration(key, config)
            return config

    def clear_item_configuration(self, cod_item: str) -> bool:
        with self._lock:
            removed = self._itens.pop(str(cod_item).strip(), None) is not None
            if removed:
                self._touch("limpar item", cod_item=cod_item)
            return removed

    def set_global_configuration(self, config: ItemConfiguration) -> None:
        with self._lock:
            self._global = GlobalConfiguration(**config.model_dump())
            self._touch("global")

    def clear_all(self) -> None:
        with self._lock:
            count = len(self._itens)
            self._itens.clear()
            self._global = GlobalConfiguration()
            self._touch("limpar tudo", itens=count)
        logger.info("Todas as configurações foram limpas (%s itens)", count)

    def apply_by_ncm(self, ncm: str, cod_item_origem: str, itens: Iterable[FiscalItem]) -> int:
        """
        Copia a configuração de um item para todos os itens com o mesmo NCM.
        Campos definidos na origem sobrescrevem os do destino.
        Retorna quantos itens receberam a configuração.
        """
        ncm_digits = norm_ncm(ncm)
        with self._lock:
            origem = self._itens.get(str(cod_item_origem).strip())
            if not ncm_digits or origem is None:
                return 0

            campos = origem.model_dump(exclude_none=True)
            aplicados: List[str] = []
            for item in itens:
                if norm_ncm(item.ncm or "") != ncm_digits:
                    continue
                atual = self._itens.get(item.cod_item, ItemConfiguration()).model_dump()
                atual.update(campos)
                self._itens[item.cod_item] = ItemConfiguration(**atual)
                aplicados.append(item.cod_item)

            if aplicados:
                self._touch("aplicar por ncm", ncm=ncm_digits, itens=len(aplicados))

        if aplicados:
            logger.info("Configuração do item %s aplicada a %s item(ns) com NCM %s", cod_item_origem, len(aplicados), ncm_digits)
        return len(aplicados)
