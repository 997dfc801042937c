"""
Bookmark Enricher

AI-powered enrichment for bookmarks: titles, summaries, keywords and
publication dates via grounded Gemini calls, with export and Notion sync.
"""

__version__ = "1.0.0"
