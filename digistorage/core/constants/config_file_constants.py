"""Section and option names used in the `.digiStorageConfig` file."""

AUTHENTICATION_SECTION_NAME = "authentication"
ENDPOINTS_SECTION_NAME = "endpoints"
BATCH_SECTION_NAME = "batch"
DEBUG_SECTION_NAME = "debug"

AUTH_TOKEN_ENVIRONMENT_VARIABLE = "DIGI_STORAGE_AUTH_TOKEN"
