"""
Concurrent token pipelines.

Stages are composed with :func:`pipe` and :func:`combine` and exchange
tokens over zero-capacity hand-offs.
"""

from postcorrect.stream.channel import HandOff
from postcorrect.stream.engine import (
    Stage,
    check_composition,
    combine,
    each_line,
    each_token,
    each_token_in_document,
    pipe,
    read_token,
    send_tokens,
    stage,
    tee,
)
from postcorrect.stream.merges import (
    connect_merges_with_gt,
    connect_split_candidates,
    generate_splits,
    merge_tokens,
)
from postcorrect.stream.stages import (
    add_short_tokens_to_profile,
    connect_candidates,
    connect_corrections,
    connect_language_model,
    connect_profile,
    connect_rankings,
    connect_unigrams,
    filter_bad,
    filter_lexicon_entries,
    filter_non_lexicon_entries,
    filter_short,
    mark_corrections,
    normalize,
)

__all__ = [
    # Engine
    "HandOff",
    "Stage",
    "check_composition",
    "combine",
    "each_line",
    "each_token",
    "each_token_in_document",
    "pipe",
    "read_token",
    "send_tokens",
    "stage",
    "tee",
    # Filters
    "filter_bad",
    "filter_lexicon_entries",
    "filter_non_lexicon_entries",
    "filter_short",
    "normalize",
    # Connectors
    "add_short_tokens_to_profile",
    "connect_candidates",
    "connect_corrections",
    "connect_language_model",
    "connect_profile",
    "connect_rankings",
    "connect_unigrams",
    "mark_corrections",
    # Merges
    "connect_merges_with_gt",
    "connect_split_candidates",
    "generate_splits",
    "merge_tokens",
]
