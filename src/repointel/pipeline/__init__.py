"""Aggregation pipeline — Cache → Client → Enrichment → Cache.

The pipeline coordinates the data flow for every public operation:
1. Check the TTL cache
2. Fan out requests to the remote source
3. Compute derived fields
4. Store and return the result

Components:
- Aggregator: Main coordinator
"""

from repointel.pipeline.aggregator import Aggregator

__all__ = ["Aggregator"]
