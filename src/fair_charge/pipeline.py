"""Violation detection pipeline.

analyze(data, query=None, language="en") -> Verdict

validate -> cache lookup -> retrieve -> evaluate -> compose -> cache store

InvalidInput is the only exception a caller ever sees. Anything else that
goes wrong is logged and answered with an insufficient_info Verdict.
"""
from __future__ import annotations

import json
import logging
from typing import Any, Dict, Mapping, Optional, Tuple, Union

from pydantic import ValidationError

from fair_charge import config
from fair_charge.cache import ResultCache, fingerprint
from fair_charge.compose.composer import GENERATED, VerdictComposer, flagged_fields, insufficient_verdict
from fair_charge.errors import CorpusUnavailable, InvalidInput, SemanticCapabilityFailure
from fair_charge.evaluation.evaluators import select_evaluator
from fair_charge.llm.completion import CompletionClient, build_completion_client
from fair_charge.retrieval.embeddings import Embedder, build_embedder
from fair_charge.retrieval.retriever import MODE_SEMANTIC, Retrieval, Retriever
from fair_charge.retrieval.vector_index import EmbeddingIndex
from fair_charge.rules.store import RuleStore
from fair_charge.schemas import StructuredData, Verdict, VerdictStatus

logger = logging.getLogger(__name__)

UNAVAILABLE_REASON = "The charge could not be analysed right now. Please try again shortly."


def validate_input(data: Union[StructuredData, Mapping[str, Any]]) -> StructuredData:
    if isinstance(data, StructuredData):
        return data
    if not isinstance(data, Mapping):
        raise InvalidInput("structured data must be a JSON object",
                           [{'loc': [], 'msg': f"got {type(data).__name__}", 'type': 'type_error'}])
    try:
        return StructuredData.model_validate(dict(data))
    except ValidationError as e:
        raise InvalidInput("structured data failed validation", json.loads(e.json(include_url=False))) from e


class Pipeline:
    def __init__(
        self,
        store: RuleStore,
        retriever: Retriever,
        composer: VerdictComposer,
        cache: Optional[ResultCache] = None,
        index: Optional[EmbeddingIndex] = None,
    ):
        self.store = store
        self.retriever = retriever
        self.composer = composer
        self.cache = cache
        self.index = index

    def analyze(
        self,
        data: Union[StructuredData, Mapping[str, Any]],
        query: Optional[str] = None,
        language: str = 'en',
        use_cache: bool = True,
    ) -> Verdict:
        structured = validate_input(data)
        if query is not None and not isinstance(query, str):
            raise InvalidInput("query must be a string", [{'loc': ['query'], 'msg': 'not a string', 'type': 'type_error'}])
        if language not in config.SUPPORTED_LANGUAGES:
            raise InvalidInput(
                f"unsupported language: {language!r}",
                [{'loc': ['language'], 'msg': f"expected one of {list(config.SUPPORTED_LANGUAGES)}", 'type': 'value_error'}],
            )

        stamp = self.store.current_version_stamp()
        cache = self.cache if use_cache else None
        try:
            key = fingerprint(structured, query, language, stamp)
            if cache is not None:
                cached = cache.get(key)
                if cached is not None:
                    return cached
            verdict, degraded = self._compute(structured, query, language)
        except Exception as e:
            logger.exception(f"[pipeline] Analysis failed, answering insufficient_info: {e}")
            return insufficient_verdict(UNAVAILABLE_REASON, language, stamp, 'unavailable', flagged_fields(structured))

        if cache is not None and not degraded and verdict.corpus_version == stamp:
            cache.put(key, verdict, corpus_version=verdict.corpus_version)
        return verdict

    def _retrieve(self, data: StructuredData, query: Optional[str], language: str) -> Retrieval:
        for attempt in (1, 2):
            try:
                return self.retriever.run(data, query, language)
            except CorpusUnavailable as e:
                if attempt == 2:
                    raise
                logger.info(f"[pipeline] Corpus unavailable ({e}); retrying once")
        raise CorpusUnavailable("unreachable")

    def _compute(self, data: StructuredData, query: Optional[str], language: str) -> Tuple[Verdict, bool]:
        retrieval = self._retrieve(data, query, language)
        evaluator = select_evaluator(data.charge_type)
        result = evaluator.evaluate(data, retrieval.candidates, query)
        verdict = self.composer.compose(
            result,
            retrieval.candidates,
            language=language,
            data=data,
            retrieval_mode=retrieval.mode,
            corpus_version=retrieval.corpus_version,
        )
        degraded = retrieval.mode != MODE_SEMANTIC
        if (self.composer.completion_client is not None
                and verdict.status != VerdictStatus.INSUFFICIENT_INFO
                and verdict.explanation_source != GENERATED):
            degraded = True
        logger.info(
            f"[pipeline] {data.charge_type.value} -> {verdict.status.value} "
            f"(rules={list(verdict.rule_ids)}, mode={retrieval.mode}, v{retrieval.corpus_version})"
        )
        return verdict, degraded

    def stats(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {'corpus': self.store.metadata()}
        if self.cache is not None:
            out['result_cache'] = self.cache.stats()
        if self.index is not None:
            out['embedding_cache'] = self.index.cache_info()
            out['index'] = {'model': self.index.model_name, 'stamp': self.index.stamp, 'rebuilding': self.index.rebuilding}
        return out

    def close(self) -> None:
        self.retriever.close()


def build_pipeline(
    rules_path: Optional[str] = None,
    store: Optional[RuleStore] = None,
    embedder: Optional[Embedder] = None,
    embedding_backend: Optional[str] = None,
    completion_client: Optional[CompletionClient] = None,
    completion_backend: Optional[str] = None,
    index_path: Optional[str] = config.RULE_INDEX_PATH,
    timeout: float = config.SEMANTIC_TIMEOUT_SECONDS,
    use_cache: bool = True,
    warm: bool = True,
) -> Pipeline:
    """Wire a Pipeline from configuration; explicit arguments override config."""
    if store is None:
        store = RuleStore.from_yaml(rules_path or config.RULES_PATH)
    if embedder is None:
        embedder = build_embedder(embedding_backend or config.EMBEDDING_BACKEND)
    index = EmbeddingIndex(store, embedder, persist_path=index_path)
    if warm:
        try:
            index.ensure_current()
        except (SemanticCapabilityFailure, CorpusUnavailable) as e:
            logger.warning(f"[pipeline] Rule index not built at startup ({e}); will retry on first request")
    if completion_client is None:
        completion_client = build_completion_client(completion_backend or config.COMPLETION_BACKEND)
    retriever = Retriever(store, index, timeout=timeout)
    composer = VerdictComposer(completion_client=completion_client, store=store)
    cache = ResultCache(stamp_fn=store.current_version_stamp) if use_cache else None
    return Pipeline(store=store, retriever=retriever, composer=composer, cache=cache, index=index)


__all__ = ['Pipeline', 'build_pipeline', 'validate_input']
