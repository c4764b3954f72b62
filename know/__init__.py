"""
Know core package.

The enrichment subsystem turns freshly written or edited articles into
tagged, summarized and semantically searchable records. It exposes the
article record and state helpers, a repository boundary, a vector index with
pluggable backends, a tag-frequency cache, a language-model interface, and a
queue plus worker pool that drive articles through the enrichment pipeline.
"""
