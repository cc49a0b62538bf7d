"""Encode the rule corpus and persist the embedding index with dill.

Writes models/rule_index.pkl with keys:
  - model_name
  - corpus_hash (sha256 of rule ids, versions and indexed text)
  - rule_ids
  - embeddings (numpy array shape [N, D])
  - dim

The API reuses this file at startup when both the model name and the corpus
hash match, so the sentence-transformers model is not run over the whole
corpus on every boot.

CLI:
  python scripts/build_rule_index.py \
      --rules src/fair_charge/rules/consumer_rules.yml \
      --backend sentence-transformers \
      --model paraphrase-multilingual-MiniLM-L12-v2
"""
from __future__ import annotations

import argparse
import os
import sys

PROJECT_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), os.pardir))
SRC_DIR = os.path.join(PROJECT_ROOT, 'src')
if SRC_DIR not in sys.path:
    sys.path.insert(0, SRC_DIR)

from fair_charge import config  # noqa: E402
from fair_charge.retrieval.embeddings import build_embedder  # noqa: E402
from fair_charge.retrieval.vector_index import EmbeddingIndex  # noqa: E402
from fair_charge.rules.store import RuleStore  # noqa: E402


def build_rule_index(rules_path: str, backend: str, model_name: str, out_path: str) -> str:
    store = RuleStore.from_yaml(rules_path)
    if store.rejected:
        print(f"[rule-index] Warning: {len(store.rejected)} rule(s) rejected; run scripts/validate_rules.py")
    index = EmbeddingIndex(store, build_embedder(backend, model_name))
    meta = index.save(out_path)
    print(f"[rule-index] Saved {len(meta['rule_ids'])} embeddings of dim {meta['dim']} "
          f"({meta['model_name']}, corpus {meta['corpus_hash'][:12]}) to {out_path}")
    return out_path


def main():
    parser = argparse.ArgumentParser(description='Build the persisted rule embedding index.')
    parser.add_argument('--rules', default=config.RULES_PATH, help='Rule corpus YAML')
    parser.add_argument('--backend', default=config.EMBEDDING_BACKEND, help='sentence-transformers | hashing')
    parser.add_argument('--model', default=config.EMBEDDING_MODEL, help='SentenceTransformer model name')
    parser.add_argument('--out', default=config.RULE_INDEX_PATH, help='Output pickle path')
    args = parser.parse_args()
    build_rule_index(args.rules, backend=args.backend, model_name=args.model, out_path=args.out)


if __name__ == '__main__':
    main()
