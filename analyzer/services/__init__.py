"""
Services for the analysis core.

External collaborators are reached through the contracts in ports.py:
- BrightDataScraper (ScraperService)
- ReviewAnalysisService (AnalysisService)
- PriceAnalysisService
- PushoverChannel (PushChannel)
"""
