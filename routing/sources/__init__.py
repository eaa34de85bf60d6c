from routing.sources.base import QuoteSource, min_out
from routing.sources.clober_v2 import CloberV2Source
from routing.sources.gateway import RouterGateway
from routing.sources.magpie import MagpieSource
from routing.sources.openocean import OpenOceanSource

__all__ = [
    "QuoteSource",
    "min_out",
    "CloberV2Source",
    "RouterGateway",
    "MagpieSource",
    "OpenOceanSource",
]
