"""
ssheat ingestion pipeline.

tail.TailDriver runs one pass over the auth log. It uses
checkpoint.CheckpointTracker to decide which lines are new, and
emitter.EventEmitter to persist attempts and queue geo lookups
(enrichment.GeoEnricher).
"""
