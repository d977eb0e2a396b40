"""Global pytest configuration."""

import os

# Runs before docuhealth is imported; the module-level app reads settings lazily
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")

# Factory tests expect provider credentials to come only from explicit Settings kwargs
for name in (
    "GCP_ACCESS_TOKEN",
    "DOC_AI_PROJECT_ID",
    "DOC_AI_LOCATION",
    "DOC_AI_PROCESSOR_ID",
    "DOC_AI_GCS_BUCKET",
):
    os.environ.pop(name, None)
