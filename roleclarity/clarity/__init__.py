"""
Role clarity engine.

Deterministic analysis over entity views; the generative backend is reached
only through ``roleclarity.ai.backend.ClarityBackend``.

    extractor         text / URL → ExpectedRoleExtraction
    comparator        expected vs. current role → ComparisonResult
    overlap_detector  workspace snapshot → WorkspaceOverlapResult
    handoff_advisor   workspace snapshot → HandoffSLAResult
    proposal_generator comparison → ProposalSet
"""
