"""Abstract interfaces for the catalog data sources.

The router and graph services depend on these contracts, never on a
concrete provider, so the public web service and the local replica are
interchangeable behind them.
"""

from src.interfaces.catalog_provider import ICatalogProvider, IReplicaProvider

__all__ = ["ICatalogProvider", "IReplicaProvider"]
