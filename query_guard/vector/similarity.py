"""
Cosine similarity for local vector scans.
"""

from typing import List, Sequence, Tuple

import numpy as np

from query_guard.core.models import VectorRecord


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """
    Cosine similarity of two vectors.

    Returns 0.0 when either vector has zero norm or the lengths differ.
    """
    if len(a) != len(b) or len(a) == 0:
        return 0.0
    va = np.asarray(a, dtype=float)
    vb = np.asarray(b, dtype=float)
    denom = np.linalg.norm(va) * np.linalg.norm(vb)
    if denom == 0:
        return 0.0
    return float(np.dot(va, vb) / denom)


def rank_records(
    query_vector: Sequence[float],
    records: Sequence[VectorRecord],
    min_score: float = 0.0,
    limit: int = 10,
    chunk_size: int = 1024,
) -> List[Tuple[VectorRecord, float]]:
    """
    Rank records by cosine similarity to a query vector.

    Records are scored in chunks with one matrix product per chunk. Records
    with an empty or zero-norm embedding are skipped; records whose dimension
    differs from the query score 0.

    Args:
        query_vector: Query embedding
        records: Candidate records
        min_score: Minimum similarity kept
        limit: Maximum number of results
        chunk_size: Records per matrix product

    Returns:
        (record, score) pairs, best first
    """
    query = np.asarray(query_vector, dtype=float)
    query_norm = np.linalg.norm(query) if query.size else 0.0
    dim = query.size

    scored: List[Tuple[VectorRecord, float]] = []
    usable = [r for r in records if r.embedding and any(r.embedding)]

    for start in range(0, len(usable), max(1, chunk_size)):
        chunk = usable[start:start + chunk_size]
        matching = [r for r in chunk if len(r.embedding) == dim]
        for record in chunk:
            if len(record.embedding) != dim:
                scored.append((record, 0.0))

        if not matching or query_norm == 0:
            scored.extend((r, 0.0) for r in matching)
            continue

        matrix = np.asarray([r.embedding for r in matching], dtype=float)
        norms = np.linalg.norm(matrix, axis=1)
        scores = matrix @ query / (norms * query_norm)
        scored.extend((r, float(s)) for r, s in zip(matching, scores))

    kept = [(r, s) for r, s in scored if s >= min_score]
    kept.sort(key=lambda pair: pair[1], reverse=True)
    return kept[:limit]
