from .serpapi import ShoppingClient
from .amazon import MarketplaceClient

# Search priority order: aggregator first, marketplace second.
PROVIDERS = {
    "serpapi": ShoppingClient,
    "amazon": MarketplaceClient,
}
