# Models package init
from eiao.models.ordeal import Ordeal

__all__ = ["Ordeal"]
