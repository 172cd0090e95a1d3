"""
Write the OpenAPI document for client generation.

    python -m qms_workflow.api.generate_openapi [output_dir]
"""

import json
import os
import sys

from qms_workflow.api.main import app

# Identity headers every quality route expects; FastAPI lists them per operation only.
REQUIRED_HEADERS = {
    "X-Tenant-ID": "UUID of the tenant; scopes every record and audit query.",
    "X-Actor-ID": "Acting user id; required on mutating routes and recorded in the audit trail.",
}


# PUBLIC_INTERFACE
def write_openapi(output_dir: str = "interfaces") -> str:
    """Dump app.openapi() plus x-required-headers to <output_dir>/openapi.json and return the path."""
    schema = dict(app.openapi())
    schema["x-required-headers"] = REQUIRED_HEADERS
    os.makedirs(output_dir, exist_ok=True)
    output_path = os.path.join(output_dir, "openapi.json")
    with open(output_path, "w") as f:
        json.dump(schema, f, indent=2)
    return output_path


if __name__ == "__main__":
    print(write_openapi(*sys.argv[1:2]))
