"""
API route modules for the quality workflow.

This package contains subrouters for:
- Workflow: transitions, dispositions, board votes, 8D steps, SCAR review and links
- Audit: audit trail, milestones and progress
- Records: record CRUD, schemas, notes, tasks and attachments
- Reports: quality register and audit trail exports

Routers are included from qms_workflow.api.main (under the /api/v1 prefix).
"""
