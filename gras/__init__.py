"""
GRAS subject ranking scraper.

This package drives a headless browser over the ShanghaiRanking Global
Ranking of Academic Subjects pages, normalizes the ranking tables it finds
and writes them out as JSON or CSV.
"""

__version__ = "0.1.0"
