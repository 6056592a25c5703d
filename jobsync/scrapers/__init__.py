from .adzuna import AdzunaScraper
from .greenhouse import GreenhouseScraper
from .lever import LeverScraper

__all__ = [
    "AdzunaScraper",
    "GreenhouseScraper",
    "LeverScraper",
]
