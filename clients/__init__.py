from .functions.enrichment import AliasEnricher
from .functions.sync import CCASyncOrchestrator, build_orchestrator
from .web3.base_chain import ChainLogReader
from .web3.naming import NameResolver

__all__ = [
    "AliasEnricher",
    "CCASyncOrchestrator",
    "build_orchestrator",
    "ChainLogReader",
    "NameResolver",
]
