"""
NFT marketplace auction indexer.

Crawls marketplace contract events into a document store and serves the
reconciled auction state over HTTP.
"""

__version__ = "1.0.0"
