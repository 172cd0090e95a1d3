"""
Workflow engine: pure functions over quality record snapshots.

Modules:
- state_machine: per-entity transition tables and apply_transition
- guards: transition preconditions and their stamping side effects
- approvals: MRB voting/quorum, NCR sign-off, CAPA 8D step sequencing, SCAR review
- records: field edits, notes, tasks and attachment metadata
- linkage: bidirectional NCR/MRB/CAPA/SCAR references
- audit: field-level diffing and audit entry construction
- progress: status -> step index / percent and milestone lists

Engine functions never mutate their inputs; they return new snapshots and
raise qms_workflow.core.errors types on failure. Persistence, versioning and
audit appends are orchestrated by qms_workflow.services.workflow.
"""
