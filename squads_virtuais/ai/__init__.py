"""
Squads Virtuais
AI module — structure proposals and the suggestion review queue.

Submodules:
    - gateway: LLM Gateway (provider routing, token and latency accounting)
    - prompt_registry: DB-backed prompt versions and template rendering
    - proposal_generator: Problem Statement → structure proposal
    - suggestion_queue: proposal breakdown and approve/reject workflow
    - appliers: SuggestionType → entity-store writer registry
"""
