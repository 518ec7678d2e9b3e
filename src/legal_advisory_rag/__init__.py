"""
Legal Advisory RAG — PDF ingestion and retrieval-augmented answering.

Uploaded PDFs are staged, chunked, embedded and merged into one persistent
vector index by a single background worker; queries retrieve the closest
chunks from that index to ground a language-model answer.
"""

__version__ = "0.1.0"
