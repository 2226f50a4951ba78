from __future__ import annotations


class DomainError(Exception):
    """Base para erros de dominio."""


class PriceUnavailableError(DomainError):
    """Nenhum feed de preco do BTC respondeu e nao ha valor em cache."""


class IndexerRequestError(DomainError):
    """Requisicao ao indexador falhou apos as tentativas."""


class StatsComputationError(DomainError):
    """Falha ao calcular as estatisticas da chain."""


class ExploreStatsInputError(DomainError):
    """Parametros invalidos para consulta de estatisticas."""
