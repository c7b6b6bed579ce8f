"""
Response caching package.

Provides the cache interceptor used in front of request handlers to reduce
latency and load on downstream services. Entries are short-lived, keyed by
request identity, and explicitly invalidated.
"""
