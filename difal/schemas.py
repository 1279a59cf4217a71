from __future__ import annotations

from typing import Any, Dict, List, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .utils import to_float


# -------------------------
# INPUT (o que o leitor do SPED entrega)
# -------------------------
class FiscalItem(BaseModel):
    """
    Item de nota (registro C170) já anotado para o cálculo.

    Os campos numéricos são mantidos como vieram da fonte (número ou texto);
    a conversão acontece durante o cálculo, para que um item malformado
    gere erro só nele e não na carga inteira.
    """
    model_config = ConfigDict(frozen=True)

    cod_item: str = Field(..., description="COD_ITEM do registro 0200/C170")
    ncm: Optional[str] = Field(None, description="NCM do item (pode vir com pontos)")
    cfop: Optional[str] = Field(None, description="CFOP da entrada (ex: 2551, 2556)")
    descricao: Optional[str] = None
    cst_icms: Optional[str] = Field(None, description="CST ICMS com dígito de origem (ex: 000, 100)")
    aliq_icms: Optional[Union[float, str]] = Field(None, description="Alíquota ICMS declarada na nota")
    base_calculo_difal: Optional[Union[float, str]] = None
    valor_liquido: Optional[Union[float, str]] = None
    valor_item: Optional[Union[float, str]] = None
    valor_icms: Optional[Union[float, str]] = Field(None, description="VL_ICMS destacado na nota (CST 20/70)")

    @field_validator("cod_item", "ncm", "cfop", "cst_icms", mode="before")
    @classmethod
    def _codigo_como_texto(cls, v: Any) -> Any:
        if v is None or isinstance(v, str):
            return v
        return str(v)

    def resolver_base(self) -> float:
        """
        Base DIFAL: base explícita > valor líquido > valor do item.
        O primeiro valor diferente de zero vence.
        """
        for campo in ("base_calculo_difal", "valor_liquido", "valor_item"):
            valor = to_float(getattr(self, campo), campo)
            if valor:
                return valor
        return 0.0


class JurisdictionPair(BaseModel):
    model_config = ConfigDict(frozen=True)

    origem: str = Field(..., min_length=2, max_length=2)
    destino: str = Field(..., min_length=2, max_length=2)


# -------------------------
# CONFIGURAÇÕES (item e global)
# -------------------------
class ItemConfiguration(BaseModel):
    # benefício e seus parâmetros (valores inválidos são rejeitados no cálculo, não aqui)
    beneficio: Optional[str] = Field(
        None,
        description="isencao | reducao-base | reducao-aliquota-origem | reducao-aliquota-destino",
    )
    carga_efetiva_desejada: Optional[float] = None
    aliq_origem_efetiva: Optional[float] = None
    aliq_destino_efetiva: Optional[float] = None

    # sobrescritas simples de alíquota
    aliq_origem: Optional[float] = Field(None, ge=0)
    aliq_destino: Optional[float] = Field(None, ge=0)
    fcp_manual: Optional[float] = Field(None, ge=0)

    def is_empty(self) -> bool:
        return not self.model_dump(exclude_none=True)


class GlobalConfiguration(ItemConfiguration):
    pass


# -------------------------
# RESULTADO POR ITEM
# -------------------------
class AppliedBenefit(BaseModel):
    model_config = ConfigDict(frozen=True)

    tipo: str
    descricao: str
    carga_efetiva_desejada: Optional[float] = None
    base_original: Optional[float] = None
    base_nova: Optional[float] = None
    percentual_reducao: Optional[float] = None
    aliq_original: Optional[float] = None
    aliq_nova: Optional[float] = None
    reducao: Optional[float] = None
    # isenção: valores que seriam devidos sem o benefício
    difal_dispensado: Optional[float] = None
    fcp_dispensado: Optional[float] = None


class CalculationResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    cod_item: str
    ncm: Optional[str] = None
    cfop: Optional[str] = None
    descricao: Optional[str] = None
    cst_icms: Optional[str] = None
    destinacao: Optional[str] = None

    metodo: Optional[str] = None
    base_calculo_original: float = 0.0
    base_calculo: float = 0.0
    aliq_origem: float = 0.0
    aliq_destino: float = 0.0
    aliq_fcp: float = 0.0

    valor_difal: float = 0.0
    valor_fcp: float = 0.0
    total_recolher: float = 0.0

    beneficio_aplicado: Optional[AppliedBenefit] = None
    memoria_calculo: Tuple[str, ...] = ()
    erro: Optional[str] = None


# -------------------------
# TOTALIZADORES DA EXECUÇÃO
# -------------------------
class RunTotals(BaseModel):
    model_config = ConfigDict(frozen=True)

    total_itens: int = 0
    itens_com_difal: int = 0
    itens_com_erro: int = 0
    itens_com_beneficio: int = 0
    total_difal: float = 0.0
    total_fcp: float = 0.0
    total_base: float = 0.0
    total_recolher: float = 0.0
    percentual_com_difal: float = 0.0


# -------------------------
# API
# -------------------------
class JurisdicoesRequest(BaseModel):
    origem: str = Field(..., min_length=2, max_length=2)
    destino: str = Field(..., min_length=2, max_length=2)


class CargaItensResponse(BaseModel):
    carregados: int


class AplicarPorNcmRequest(BaseModel):
    ncm: str
    cod_item_origem: str


class AplicarPorNcmResponse(BaseModel):
    ncm: str
    aplicados: int


class CalcularResponse(BaseModel):
    origem: str
    destino: str
    metodo: str
    resultados: List[CalculationResult]
    totais: RunTotals


class ConfiguracoesResponse(BaseModel):
    global_config: GlobalConfiguration
    itens: Dict[str, ItemConfiguration]


class JurisdicaoResponse(BaseModel):
    uf: str
    nome: str
    aliquota_interna: float
    fcp: float
    fcp_max: Optional[float] = None
    metodologia: str
    regiao: str
    fcp_base_dupla: bool


# -------------------------
# ANÁLISE DE PARETO
# -------------------------
class ParetoGroup(BaseModel):
    model_config = ConfigDict(frozen=True)

    chave: str
    valor: float
    quantidade: int
    posicao: int
    participacao: float
    participacao_acumulada: float
    pareto: bool


class ParetoAnalysis(BaseModel):
    model_config = ConfigDict(frozen=True)

    agrupar_por: str
    campo_valor: str
    limite: float
    total_itens: int
    total_grupos: int
    valor_total: float
    grupos_pareto: int
    valor_pareto: float
    percentual_pareto: float
    concentracao: float
    nivel_concentracao: str
    grupos: Tuple[ParetoGroup, ...] = ()
