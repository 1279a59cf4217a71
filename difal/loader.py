from __future__ import annotations

import csv
import logging
import os
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional, Tuple

from .utils import norm_code, parse_float_ptbr, parse_sn

logger = logging.getLogger(__name__)


# =================================================
# Caminho base dos CSV
# =================================================

BASE_PATH = os.path.join(
    os.path.dirname(__file__),
    "..",
    "data",
    "jurisdicoes"
)

ESTADOS_CSV = "estados.csv"

# Fallback documentado para UF desconhecida
FALLBACK_ALIQUOTA_INTERNA = 18.0
FALLBACK_FCP = 0.0
FALLBACK_METODOLOGIA = "base-dupla"

ALIQUOTA_INTERESTADUAL_PADRAO = 12.0
ALIQUOTA_INTERESTADUAL_REDUZIDA = 7.0
REGIOES_SUL_SUDESTE = ("SUL", "SUDESTE")

# CFOPs de entrada interestadual sem ST que geram DIFAL
CFOPS_DIFAL = {
    "2556": "uso-consumo",
    "2551": "ativo-imobilizado",
}


def destinacao_cfop(cfop: Optional[str]) -> Optional[str]:
    return CFOPS_DIFAL.get(norm_code(cfop))


# -------------------------
# Leitura CSV (separador ;)
# -------------------------
def _limpar_linha(row: Dict[Optional[str], Any]) -> Dict[str, str]:
    # colunas sobrando (restkey None) são descartadas
    return {
        k.strip().lstrip("\ufeff").lower(): (v.strip() if isinstance(v, str) else "")
        for k, v in row.items()
        if k is not None
    }


def read_csv_semicolon(path: str, encodings: Tuple[str, ...] = ("utf-8-sig", "cp1252")) -> List[Dict[str, str]]:
    """
    Lê um CSV `;` com cabeçalho. Arquivo ausente é erro: a tabela de UFs
    é obrigatória. Tenta as codificações em ordem (planilhas salvas no
    Excel costumam vir em cp1252).
    """
    if not os.path.isfile(path):
        raise FileNotFoundError(f"Tabela de UFs não encontrada: {path}")

    erro: Optional[UnicodeDecodeError] = None
    for enc in encodings:
        try:
            with open(path, "r", encoding=enc, newline="") as f:
                return [_limpar_linha(r) for r in csv.DictReader(f, delimiter=";")]
        except UnicodeDecodeError as e:
            logger.debug("Falha lendo %s como %s; tentando próxima codificação", path, enc)
            erro = e
    raise erro


# -------------------------
# Tabela de UFs
# -------------------------
@dataclass(frozen=True)
class JurisdictionRates:
    uf: str
    aliquota_interna: float
    fcp: float
    metodologia: str = FALLBACK_METODOLOGIA
    nome: str = ""
    regiao: str = ""
    fcp_max: Optional[float] = None
    # se a UF cobra o FCP padrão junto com a base dupla
    fcp_base_dupla: bool = True
    conhecida: bool = True


def _row_to_rates(row: Dict[str, str]) -> Optional[JurisdictionRates]:
    uf = norm_code(row.get("uf"))
    if len(uf) != 2:
        return None

    aliquota = parse_float_ptbr(row.get("aliquota_interna"))
    if aliquota is None:
        logger.warning("UF %s sem alíquota interna válida; usando fallback %s%%", uf, FALLBACK_ALIQUOTA_INTERNA)
        aliquota = FALLBACK_ALIQUOTA_INTERNA

    fcp_base_dupla_raw = (row.get("fcp_base_dupla") or "").strip()

    return JurisdictionRates(
        uf=uf,
        nome=row.get("nome") or "",
        aliquota_interna=aliquota,
        fcp=parse_float_ptbr(row.get("fcp")) or FALLBACK_FCP,
        fcp_max=parse_float_ptbr(row.get("fcp_max")),
        metodologia=(row.get("metodologia") or FALLBACK_METODOLOGIA).strip().lower(),
        regiao=norm_code(row.get("regiao")),
        fcp_base_dupla=parse_sn(fcp_base_dupla_raw) if fcp_base_dupla_raw else True,
    )


class JurisdictionTable:
    """
    Alíquotas internas, FCP e metodologia por UF.

    Somente leitura durante uma execução; recarregar cria outra instância.
    """

    def __init__(self, rows: Iterable[JurisdictionRates], base_dir: Optional[str] = None):
        self.base_dir = base_dir
        self._rows: Dict[str, JurisdictionRates] = {r.uf: r for r in rows}

    @classmethod
    def from_dir(cls, data_dir: str = BASE_PATH) -> "JurisdictionTable":
        path = os.path.join(data_dir, ESTADOS_CSV)
        raw = read_csv_semicolon(path)
        if not raw:
            logger.warning("Tabela de UFs sem linhas em %s; todas as UFs usarão o fallback", path)

        rows = [r for r in (_row_to_rates(x) for x in raw) if r is not None]
        logger.info("Tabela de UFs carregada: %s UFs de %s", len(rows), path)
        return cls(rows, base_dir=data_dir)

    def __contains__(self, code: str) -> bool:
        return norm_code(code) in self._rows

    def __len__(self) -> int:
        return len(self._rows)

    def codes(self) -> List[str]:
        return sorted(self._rows)

    def lookup(self, code: str) -> JurisdictionRates:
        uf = norm_code(code)
        row = self._rows.get(uf)
        if row:
            return row
        return JurisdictionRates(
            uf=uf,
            aliquota_interna=FALLBACK_ALIQUOTA_INTERNA,
            fcp=FALLBACK_FCP,
            conhecida=False,
        )

    def interstate_rate(self, origem: str, destino: str) -> Optional[float]:
        """
        Alíquota interestadual do par; None quando alguma UF não está na tabela.

        Sul/Sudeste (exceto ES) para Norte/Nordeste/Centro-Oeste/ES: 7%.
        Demais combinações: 12%. Mesma UF: alíquota interna.
        """
        uf_o = norm_code(origem)
        uf_d = norm_code(destino)
        if uf_o not in self._rows or uf_d not in self._rows:
            return None

        if uf_o == uf_d:
            return self._rows[uf_o].aliquota_interna

        origem_sul_sudeste = self._rows[uf_o].regiao in REGIOES_SUL_SUDESTE and uf_o != "ES"
        destino_sul_sudeste = self._rows[uf_d].regiao in REGIOES_SUL_SUDESTE and uf_d != "ES"
        if origem_sul_sudeste and not destino_sul_sudeste:
            return ALIQUOTA_INTERESTADUAL_REDUZIDA

        return ALIQUOTA_INTERESTADUAL_PADRAO


def load_jurisdictions(data_dir: str = BASE_PATH) -> JurisdictionTable:
    return JurisdictionTable.from_dir(data_dir)
