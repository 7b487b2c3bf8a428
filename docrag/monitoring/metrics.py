"""Prometheus metrics for monitoring."""

from prometheus_client import Counter, Histogram

index_operations_total = Counter(
    "docrag_index_operations_total",
    "Index operations by operation and outcome",
    ["operation", "outcome"])
index_duration_seconds = Histogram(
    "docrag_index_duration_seconds", "Time to index one document", buckets=[
        0.5, 1.0, 2.0, 5.0, 10.0, 30.0, 60.0])
chunks_indexed_total = Counter(
    "docrag_chunks_indexed_total", "Total number of chunks written to the index")
vector_rollbacks_total = Counter(
    "docrag_vector_rollbacks_total", "Failed attempts whose vectors were rolled back")
orphaned_vectors_total = Counter(
    "docrag_orphaned_vectors_total", "Vectors left without relational backing after a failed rollback")

query_counter = Counter("docrag_queries_total",
                        "Total number of chat queries processed")
query_errors_total = Counter(
    "docrag_query_errors_total", "Total number of failed chat queries")
query_no_context_total = Counter(
    "docrag_query_no_context_total", "Queries answered without any retrieved context")
query_latency_seconds = Histogram(
    "docrag_query_latency_seconds", "Query latency in seconds", buckets=[0.1, 0.5, 1.0, 2.0, 5.0, 10.0])
