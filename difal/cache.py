from __future__ import annotations

from typing import Any, Dict, Optional


class GenerationCache:
    """
    Cache simples in-memory amarrado a um contador de geração.
    - O motor chama sync() no início de cada execução com a geração atual
      do ConfigurationStore; geração diferente limpa tudo.
    - Não há expiração por tempo: a tabela de UFs e as configurações só
      mudam entre execuções.
    """
    def __init__(self) -> None:
        self._data: Dict[str, Any] = {}
        self.generation: Optional[int] = None

    def sync(self, generation: int) -> bool:
        """Retorna True quando a geração mudou e o cache foi invalidado."""
        if self.generation == generation:
            return False
        self._data.clear()
        self.generation = generation
        return True

    def get(self, key: str) -> Optional[Any]:
        return self._data.get(key)

    def set(self, key: str, value: Any) -> None:
        self._data[key] = value

    def clear(self) -> None:
        self._data.clear()
        self.generation = None

    def __len__(self) -> int:
        return len(self._data)


def make_cache_key(*parts: Any) -> str:
    return "|".join(str(p).strip().upper() for p in parts)
