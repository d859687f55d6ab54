"""
Recommendation engine: turns abnormal lab analyses into ranked, deduplicated,
persisted next-step recommendations and tracks how users act on them.

Modules
-------
interfaces   : PartnerLookup + AnalysisSource protocols (external collaborators).
normalizer   : normalize() / parse_results() — results blob -> IndicatorReading list.
matcher      : SubstringIndicatorMatcher — free-text name -> CanonicalIndicator.
rules        : Rule dataclass + build_default_catalog() — condition/generator pairs.
evaluator    : RuleEvaluator — runs the catalog over one or recent analyses.
ranker       : rank() — dedup on (type, title, partner) then priority order.
store        : RecommendationStore — suppression-aware persist, list, cleanup.
interactions : InteractionRecorder — lifecycle state machine + event log.
service      : RecommendationService — facade used by the CLI and HTTP API.
"""
