# Constants.py
# Description: Constants for the postfeed cache and sync engine
#
# Imports
#
# 3rd-Party Imports
#
# Local Imports
#
########################################################################################################################
#
# Functions:

# --- Remote API ---
DEFAULT_API_BASE_URL = "https://jsonplaceholder.typicode.com"
POSTS_ENDPOINT = "/posts"
PAGE_QUERY_PARAM = "_page"
LIMIT_QUERY_PARAM = "_limit"
DEFAULT_API_TIMEOUT = 30.0

# --- Pagination ---
DEFAULT_PAGE_SIZE = 20
FIRST_PAGE = 1
# Pagination stops once this many posts are cached; 0 disables the ceiling.
DEFAULT_MAX_CACHED_POSTS = 100

# --- Validation limits ---
MAX_TITLE_LENGTH = 200
MAX_BODY_LENGTH = 10000
# Largest id a SQLite INTEGER column can hold.
MAX_POST_ID = 2**63 - 1

# --- Client identity ---
CLI_APP_CLIENT_ID = "postfeed_local_instance_v1"

#
# End of Constants.py
########################################################################################################################
