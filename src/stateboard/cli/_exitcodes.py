"""Exit codes for the stateboard CLI."""

SUCCESS = 0
GENERAL_ERROR = 1
USAGE_ERROR = 2
DATABASE_ERROR = 3
EXECUTION_FAILURE = 4
NOT_FOUND = 5
PROVIDER_ERROR = 6
