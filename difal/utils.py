from __future__ import annotations

import math
import re
from typing import Any, Optional


# -------------------------
# Utilitários de normalização
# -------------------------
def norm_ncm(ncm: str) -> str:
    # remove tudo que não for dígito (tira pontos)
    return re.sub(r"\D+", "", (ncm or ""))


def norm_code(code: Any) -> str:
    return str(code or "").strip().upper()


def _clean_numeric_text(value: Any) -> str:
    s = str(value).strip().replace("R$", "").replace("%", "").strip()
    # aceita "1.234,56" (pt-BR) e "1234.56"
    if "," in s:
        s = s.replace(".", "").replace(",", ".")
    return s


def parse_float_ptbr(value: Any) -> Optional[float]:
    """Leitura tolerante (tabelas CSV): valor inválido vira None."""
    if value is None:
        return None
    s = _clean_numeric_text(value)
    if not s:
        return None
    try:
        return float(s)
    except ValueError:
        return None


def to_float(value: Any, campo: str = "valor") -> Optional[float]:
    """
    Leitura estrita de campo numérico de item.

    None ou texto vazio -> None. Qualquer outra coisa que não seja número
    levanta ValueError com o nome do campo.
    """
    if value is None:
        return None
    if isinstance(value, bool):
        raise ValueError(f"Campo {campo} com valor não numérico: {value!r}")
    if isinstance(value, (int, float)):
        result = float(value)
    else:
        s = _clean_numeric_text(value)
        if not s:
            return None
        try:
            result = float(s)
        except ValueError:
            raise ValueError(f"Campo {campo} com valor não numérico: {value!r}") from None
    return ensure_finite(result, campo)


def ensure_finite(value: float, campo: str) -> float:
    if not math.isfinite(value):
        raise ValueError(f"Valor não finito em {campo}: {value}")
    return value


def parse_sn(value: Any) -> bool:
    return norm_code(value) in ("S", "SIM", "1", "TRUE", "T", "Y")


# -------------------------
# Formatação para memória de cálculo
# -------------------------
def _ptbr(value: float, casas: int = 2) -> str:
    txt = f"{value:,.{casas}f}"
    return txt.replace(",", "_").replace(".", ",").replace("_", ".")


def formatar_moeda(value: Optional[float]) -> str:
    return f"R$ {_ptbr(value or 0.0)}"


def formatar_percentual(value: Optional[float]) -> str:
    return f"{_ptbr(value or 0.0)}%"


def round_money(v: Optional[float]) -> Optional[float]:
    if v is None:
        return None
    return round(float(v), 2)
