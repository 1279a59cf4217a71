# difal/exceptions.py

class DifalInputError(Exception):
    """
    Erro de entrada do cálculo DIFAL.
    Levantado antes de qualquer cálculo; a execução não começa.
    """

    def __init__(self, mensagem: str):
        self.mensagem = mensagem
        super().__init__(mensagem)


class NenhumItemError(DifalInputError):
    def __init__(self, mensagem: str = "Nenhum item disponível para cálculo"):
        super().__init__(mensagem)


class JurisdicaoNaoConfiguradaError(DifalInputError):
    """
    UF de origem e/ou destino não configuradas para a execução.
    """

    def __init__(self, mensagem: str = "UFs de origem e destino não configuradas"):
        super().__init__(mensagem)


class JurisdicaoInvalidaError(DifalInputError):
    """
    Código de UF fora do formato esperado (duas letras).
    """

    def __init__(self, mensagem: str, codigo=None):
        self.codigo = codigo
        super().__init__(mensagem)
