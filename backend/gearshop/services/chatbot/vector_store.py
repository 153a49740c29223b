"""
Product vector store for semantic search

Each product becomes one English-weighted text document, embedded with a
sentence-transformers model. Vectors are L2-normalized before they go into a
FAISS inner-product index, so index scores are cosine similarities.
"""
import json
import logging
import re
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Tuple

import faiss
import numpy as np

from gearshop.core.config import settings
from gearshop.domain.product import Product

logger = logging.getLogger(__name__)


# Category names in the catalog are Vietnamese; documents and queries use English
VI_EN_CATEGORY_MAP = {
    "Màn hình": "Monitor",
    "Bàn phím cơ": "Mechanical Keyboard",
    "Chuột": "Mouse",
    "Tai nghe": "Headset",
    "Gaming PCs": "Gaming PC",
    "Gaming Laptops": "Gaming Laptop",
}

# Longest keywords first so "laptop gaming" wins over "laptop"
KEYWORD_TO_ENGLISH_CATEGORY = [
    ("máy tính để bàn", "Gaming PC"),
    ("máy tính xách tay", "Gaming Laptop"),
    ("laptop gaming", "Gaming Laptop"),
    ("máy tính", "Gaming PC"),
    ("màn hình", "Monitor"),
    ("bàn phím", "Mechanical Keyboard"),
    ("tai nghe", "Headset"),
    ("keyboard", "Mechanical Keyboard"),
    ("headset", "Headset"),
    ("monitor", "Monitor"),
    ("laptop", "Gaming Laptop"),
    ("chuột", "Mouse"),
    ("mouse", "Mouse"),
    ("pc", "Gaming PC"),
]

# Whole words only: "pc" must not match "pcie", nor "mouse" match "mousepad"
CATEGORY_PATTERNS = [
    (re.compile(rf"(?<!\w){re.escape(keyword)}(?!\w)"), english)
    for keyword, english in KEYWORD_TO_ENGLISH_CATEGORY
]

ACCESSORY_CATEGORIES = {"Monitor", "Mouse", "Headset", "Mechanical Keyboard"}

INDEX_FILE = "products.faiss"
DOCUMENTS_FILE = "documents.json"


def to_english_category(name: Optional[str]) -> str:
    if not name:
        return "Unknown Category"
    return VI_EN_CATEGORY_MAP.get(name, name)


def detect_category(query: str) -> Tuple[Optional[str], str]:
    """
    Find a category keyword in the query.

    Returns:
        (english_category or None, query with the keyword replaced by the English name)
    """
    if not query:
        return None, query

    lowered = query.lower()
    for pattern, english in CATEGORY_PATTERNS:
        if pattern.search(lowered):
            return english, pattern.sub(english.lower(), lowered, count=1)
    return None, query


def compute_price_labels(products: Sequence[Product]) -> Dict[int, str]:
    """Tag the cheapest and most expensive product of every category"""
    by_category: Dict[Any, List[Product]] = {}
    for product in products:
        by_category.setdefault(product.category_id, []).append(product)

    labels: Dict[int, str] = {}
    for group in by_category.values():
        if len(group) < 2:
            continue
        cheapest = min(group, key=lambda p: p.effective_price)
        priciest = max(group, key=lambda p: p.effective_price)
        labels[cheapest.id] = "cheapest"
        labels[priciest.id] = "most expensive"
    return labels


def build_document(product: Product, price_label: Optional[str] = None) -> str:
    """
    Searchable text for one product.

    Sections are weighted by repetition: identity (name, brand, category)
    first, then features and price label, then specifications, then the
    free-text description.
    """
    category = to_english_category(product.category_name)
    name = product.name or ""
    brand = product.brand or "Unknown Brand"
    features = " ".join(product.features or [])

    contextual = []
    is_gaming = "gaming" in name.lower() or "gaming" in features.lower()
    if category in ACCESSORY_CATEGORIES and is_gaming:
        contextual = ["gaming accessory", "gaming gear"]

    parts = [
        name, name,
        f"{brand} {name}",
        f"{brand} {category}",
        category, category,
        brand, brand,
    ]
    parts.extend(contextual * 2)
    if price_label:
        parts.append(f"product is the {price_label} in {category}")
    if features:
        parts.append(features)

    if product.specifications:
        specs = ", ".join(f"{key}: {value}" for key, value in product.specifications.items())
        parts.extend([specs, specs])

    if product.description:
        parts.append(product.description)

    return ". ".join(part for part in parts if part)


def build_metadata(product: Product) -> Dict[str, Any]:
    return {
        "id": product.id,
        "name": product.name,
        "brand": product.brand,
        "category": product.category_name,
        "category_en": to_english_category(product.category_name),
        "price": float(product.effective_price),
        "original_price": float(product.price),
        "stock": product.stock,
        "rating": product.average_rating,
        "image": product.main_image,
    }


class EmbeddingClient:
    """Client for generating text embeddings using sentence-transformers."""

    def __init__(self, model_name: Optional[str] = None):
        # Imported here so the API can start without loading torch
        from sentence_transformers import SentenceTransformer

        self.model_name = model_name or settings.EMBEDDING_MODEL
        self.model = SentenceTransformer(self.model_name)
        logger.info(f"Embedding model loaded: {self.model_name}")

    def generate_embedding(self, text: str) -> List[float]:
        embedding = self.model.encode(text)
        return embedding.tolist()

    def generate_embeddings_batch(self, texts: List[str]) -> List[List[float]]:
        embeddings = self.model.encode(texts)
        return embeddings.tolist()


@dataclass
class SearchResult:
    product_id: int
    score: float
    metadata: Dict[str, Any] = field(default_factory=dict)
    document: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {**self.metadata, "score": round(self.score, 4)}


def _as_unit_vectors(vectors) -> np.ndarray:
    """float32, C-contiguous and L2-normalized, as FAISS expects"""
    matrix = np.ascontiguousarray(np.asarray(vectors, dtype=np.float32))
    if matrix.ndim == 1:
        matrix = matrix.reshape(1, -1)
    faiss.normalize_L2(matrix)
    return matrix


class ProductVectorStore:
    """
    FAISS inner-product index over the product catalog

    The embedder is created lazily on first use; tests pass any object with
    generate_embedding / generate_embeddings_batch.
    """

    def __init__(self, embedder=None, product_repository=None, store_path: Optional[str] = None):
        self._embedder = embedder
        self._product_repo = product_repository
        self.store_path = Path(store_path or settings.VECTOR_STORE_PATH)
        self._index: Optional[faiss.Index] = None
        self._metadata: List[Dict[str, Any]] = []
        self._documents: List[str] = []
        self._lock = threading.Lock()

    @property
    def embedder(self):
        if self._embedder is None:
            self._embedder = EmbeddingClient()
        return self._embedder

    @property
    def product_repo(self):
        if self._product_repo is None:
            from gearshop.repositories.product_repository import ProductRepository
            self._product_repo = ProductRepository()
        return self._product_repo

    @property
    def is_ready(self) -> bool:
        return self._index is not None and self._index.ntotal > 0

    def __len__(self) -> int:
        return len(self._metadata)

    # ------------------------------------------------------------------
    # Indexing
    # ------------------------------------------------------------------

    def index_products(self, products: Sequence[Product]) -> int:
        """Replace the index with the given products"""
        labels = compute_price_labels(products)
        documents = [build_document(p, labels.get(p.id)) for p in products]
        metadata = [build_metadata(p) for p in products]

        if documents:
            vectors = _as_unit_vectors(self.embedder.generate_embeddings_batch(documents))
            index = faiss.IndexFlatIP(vectors.shape[1])
            index.add(vectors)
        else:
            index = None

        with self._lock:
            self._index = index
            self._metadata = metadata
            self._documents = documents

        logger.info(f"Vector store indexed {len(documents)} products")
        return len(documents)

    def reload_from_repository(self) -> int:
        """Rebuild the index from the database and persist it"""
        products = self.product_repo.find_all_for_index()
        count = self.index_products(products)
        if count:
            self.save()
        return count

    def ensure_ready(self) -> None:
        """Load the saved index or build it from the database"""
        if self.is_ready:
            return
        if not self.load():
            self.reload_from_repository()

    # ------------------------------------------------------------------
    # Search
    # ------------------------------------------------------------------

    @staticmethod
    def _passes_filters(
        meta: Dict[str, Any],
        category: Optional[str],
        min_price: Optional[float],
        max_price: Optional[float],
        brand: Optional[str]
    ) -> bool:
        if category:
            wanted = to_english_category(category).lower()
            if wanted not in (str(meta.get("category_en", "")).lower(), str(meta.get("category", "")).lower()):
                return False
        if brand and str(meta.get("brand") or "").lower() != brand.lower():
            return False
        if min_price is not None and meta.get("price", 0) < min_price:
            return False
        if max_price is not None and meta.get("price", 0) > max_price:
            return False
        return True

    def search(
        self,
        query: str,
        k: int = 5,
        category: Optional[str] = None,
        min_price: Optional[float] = None,
        max_price: Optional[float] = None,
        brand: Optional[str] = None,
        min_score: float = 0.0
    ) -> List[SearchResult]:
        """
        Top-k products by cosine similarity.

        Explicit filters are strict. A category keyword found in the query
        (e.g. "chuột") only reorders results, putting that category first.
        """
        self.ensure_ready()
        if not self.is_ready:
            return []

        detected, search_query = detect_category(query)
        vector = _as_unit_vectors(self.embedder.generate_embedding(search_query or ""))

        # Filters run after ranking, so rank the whole catalog
        with self._lock:
            scores, indices = self._index.search(vector, self._index.ntotal)
            metadata = self._metadata
            documents = self._documents

        matching: List[SearchResult] = []
        others: List[SearchResult] = []
        for idx, raw_score in zip(indices[0], scores[0]):
            if idx == -1:
                continue
            score = float(raw_score)
            if score < min_score:
                break
            meta = metadata[idx]
            if not self._passes_filters(meta, category, min_price, max_price, brand):
                continue

            result = SearchResult(product_id=meta["id"], score=score, metadata=meta, document=documents[idx])
            if detected and not category and meta.get("category_en") != detected:
                others.append(result)
            else:
                matching.append(result)

            if len(matching) >= k:
                break

        results = (matching + others)[:k]
        logger.debug(
            f"Vector search '{query}' (as '{search_query}', category={detected or category}) -> "
            f"{[r.metadata.get('name') for r in results]}"
        )
        return results

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def save(self, path: Optional[str] = None) -> None:
        target = Path(path) if path else self.store_path
        target.mkdir(parents=True, exist_ok=True)

        with self._lock:
            if self._index is None:
                return
            faiss.write_index(self._index, str(target / INDEX_FILE))
            with open(target / DOCUMENTS_FILE, "w", encoding="utf-8") as f:
                json.dump({"metadata": self._metadata, "documents": self._documents}, f, ensure_ascii=False)

        logger.info(f"Vector store saved to {target}")

    def load(self, path: Optional[str] = None) -> bool:
        source = Path(path) if path else self.store_path
        index_file = source / INDEX_FILE
        documents_file = source / DOCUMENTS_FILE

        if not index_file.exists() or not documents_file.exists():
            logger.info(f"No saved vector store at {source}")
            return False

        try:
            index = faiss.read_index(str(index_file))
            with open(documents_file, encoding="utf-8") as f:
                payload = json.load(f)
        except (OSError, ValueError, RuntimeError) as e:
            logger.warning(f"Failed to load vector store from {source}: {e}")
            return False

        if index.ntotal != len(payload.get("metadata", [])):
            logger.warning(f"Vector store at {source} is inconsistent, ignoring it")
            return False

        with self._lock:
            self._index = index
            self._metadata = payload["metadata"]
            self._documents = payload.get("documents", [""] * len(self._metadata))

        logger.info(f"Vector store loaded from {source} ({len(self._metadata)} products)")
        return True


# ============================================================================
# SINGLETON INSTANCE
# ============================================================================

_store_instance: Optional[ProductVectorStore] = None


def get_vector_store() -> ProductVectorStore:
    """
    Get the singleton vector store instance.

    Returns:
        ProductVectorStore instance (index loaded on first search)
    """
    global _store_instance
    if _store_instance is None:
        _store_instance = ProductVectorStore()
    return _store_instance
