"""
Context Retrieval

Atomic documents, embeddings and the Pinecone vector store that supply
schema and example context to classification.
"""

from src.nlquery.rag.documents import (
    DocumentType,
    VectorDocument,
    build_all_documents,
    build_example_documents,
    build_function_documents,
    build_parameter_documents,
    build_schema_documents,
)
from src.nlquery.rag.embedders import Embedder, OpenAIEmbedder, create_embedder
from src.nlquery.rag.store import PineconeVectorStore, create_vector_store

__all__ = [
    "DocumentType",
    "Embedder",
    "OpenAIEmbedder",
    "PineconeVectorStore",
    "VectorDocument",
    "build_all_documents",
    "build_example_documents",
    "build_function_documents",
    "build_parameter_documents",
    "build_schema_documents",
    "create_embedder",
    "create_vector_store",
]
