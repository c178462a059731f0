"""Constants for classification rule loading and evaluation."""

# Satisfied criteria needed for Priority OFI when no critical criterion fires
DEFAULT_MIN_CRITERIA = 2

# Metric key carrying the number of pages an issue was observed on
AFFECTED_PAGES_METRIC = "affectedPages"

# Justification fragment for findings with no applicable criteria
NO_CRITERIA_JUSTIFICATION = "no criteria matched available context"

# Criterion names are used as metric and report keys
CRITERION_NAME_PATTERN = r"^[a-z][a-z0-9_]*$"
