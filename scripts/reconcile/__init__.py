from __future__ import annotations

from .combs import Comb, CombProducer, comb_display_name, combs_payload, extract_combs
from .constants import (
    BEES_FILE,
    BUILD_CONFIG_FILES,
    COLLISION_POLICIES,
    COMBS_FILE,
    DEFAULT_COLLISION_POLICY,
    MOD_ORDER,
    MOD_PREFIXES,
    MUTATIONS_FILE,
)
from .merger import MergedDataset, MergeError, conflicting_fields, merge_record_sets
from .mutations import (
    ChildEntry,
    MutationGroup,
    aggregate_mutations,
    groups_from_payload,
    mutations_payload,
    parent_pair,
    requirements_from_conditions,
    resolve_mutation,
)
from .output import bee_payload, bees_payload, dataset_summary, write_dataset
from .pipeline import (
    BuildResult,
    PipelineContext,
    PipelineOptions,
    build_dataset,
    load_record_sets,
    run_pipeline,
)
from .resolver import capitalize_words, mod_prefix, reference_candidates, resolve_reference
