# These are exposed functions and objects from the `digistorage.core.constants` package.
# However, these functions and objects are not public APIs for the Digi Storage Python
# client. They are free to change their signatures and implementations anytime.
# Please use them at your own risk.

from .config_file_constants import (
    AUTHENTICATION_SECTION_NAME,
    BATCH_SECTION_NAME,
    DEBUG_SECTION_NAME,
    ENDPOINTS_SECTION_NAME,
)
